import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """
    Settings read straight from environment variables (a .env file is loaded first).
    """
    # Store
    DATABASE_URL: str = os.environ.get("DATABASE_URL")
    # "postgres" or "memory"; without a DATABASE_URL the process-local store is used.
    STORE_BACKEND: str = os.environ.get("STORE_BACKEND", "postgres" if os.environ.get("DATABASE_URL") else "memory")
    DB_POOL_MIN_SIZE: int = int(os.environ.get("DB_POOL_MIN_SIZE", 5))
    DB_POOL_MAX_SIZE: int = int(os.environ.get("DB_POOL_MAX_SIZE", 20))

    # Rate limiting, e.g. redis://localhost:6379/1 in production
    RATE_LIMITER_STORAGE_URI: str = os.environ.get("RATE_LIMITER_STORAGE_URI", "memory://")
    READ_RATE_LIMIT: str = os.environ.get("READ_RATE_LIMIT", "120/minute")
    WRITE_RATE_LIMIT: str = os.environ.get("WRITE_RATE_LIMIT", "60/minute")

    # Logging
    LOG_DIR: str = os.environ.get("LOG_DIR", "logs")
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")

# Single importable settings instance
settings = Config()
