import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from ..config.config import settings


def setup_logging():
    """
    Configures the root logger for the whole application.

    Logs go both to stdout (development) and to a size-rotated file under
    LOG_DIR (production; mount the directory as a volume to keep it).
    """
    log_format = "%(asctime)s - [%(name)s] - %(levelname)s - %(message)s"

    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger()
    logger.setLevel(settings.LOG_LEVEL.upper())

    # Drop handlers installed by uvicorn and friends so one format is used everywhere.
    if logger.hasHandlers():
        logger.handlers.clear()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(logging.Formatter(log_format))
    logger.addHandler(stdout_handler)

    # Rolls over to app.log.1, app.log.2 ... once the file passes 5 MB.
    file_handler = RotatingFileHandler(
        log_dir / "app.log",
        maxBytes=5*1024*1024,
        backupCount=5
    )
    file_handler.setFormatter(logging.Formatter(log_format))
    logger.addHandler(file_handler)
