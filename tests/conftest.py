# tests/conftest.py
import asyncio
import sys

import pytest

from attn_audit.backend.models.db_models import AttendanceRecord
from tests.factories import make_record

# asyncpg needs the selector event loop on Windows.
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


@pytest.fixture
def sample_record() -> AttendanceRecord:
    return make_record()
