# attn_audit/backend/api/utilities/limiter.py

from fastapi import Request

from slowapi import Limiter
from slowapi.util import get_remote_address

from ...config.config import settings

def get_limiter_key(request: Request) -> str:
    """
    Rate limit key. Behind a proxy the first X-Forwarded-For address is the
    real client; otherwise the direct peer address is used.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)

# memory:// by default; point RATE_LIMITER_STORAGE_URI at Redis when running several workers.
limiter = Limiter(key_func=get_limiter_key, storage_uri=settings.RATE_LIMITER_STORAGE_URI)
