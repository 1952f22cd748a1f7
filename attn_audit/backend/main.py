# attn_audit/backend/main.py
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
import asyncpg
import logging

# Rate limiting
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .config.config import settings
from .api import attendance, logs

from .db.db_client import AsyncPostgresClient
from .db.memory_store import InMemoryStore
from .db.store import StoreError
from .services.errors import ServiceError, DuplicateRecordError, InvalidInputError
from .logging.logging_config import setup_logging

from .api.utilities.limiter import limiter

from fastapi.middleware.cors import CORSMiddleware

logger = logging.getLogger(__name__)

SERVICE_ERROR_STATUS = {
    DuplicateRecordError: 409,
    InvalidInputError: 400,
}

HTTP_ERROR_CODES = {
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Builds the attendance store on startup and releases it on shutdown.
    """
    setup_logging()
    logger.info(f"Starting up with the '{settings.STORE_BACKEND}' store...")

    postgres_pool = None
    try:
        if settings.STORE_BACKEND == "postgres":
            postgres_pool = await asyncpg.create_pool(
                dsn=settings.DATABASE_URL, min_size=settings.DB_POOL_MIN_SIZE, max_size=settings.DB_POOL_MAX_SIZE
            )
            store = AsyncPostgresClient(pool=postgres_pool)
            await store.ensure_schema()
            logger.info("PostgreSQL connection pool created.")
        else:
            store = InMemoryStore()
            logger.warning("Using the in-memory store; data is lost when the process exits.")
    except Exception as e:
        logger.error(f"ERROR: startup failed: {e}", exc_info=True)
        if postgres_pool:
            await postgres_pool.close()
        raise

    app.state.store = store
    app.state.postgres_pool = postgres_pool

    yield

    logger.info("Shutting down...")
    if getattr(app.state, "postgres_pool", None):
        await app.state.postgres_pool.close()
        logger.info("PostgreSQL connection pool closed.")


app = FastAPI(
    title="Attendance Audit API",
    description="Attendance records with an immutable audit trail of every change.",
    version="1.0.0",
    lifespan=lifespan
)
app.state.limiter = limiter

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def service_error_handler(request: Request, exc: ServiceError):
    status_code = SERVICE_ERROR_STATUS.get(type(exc), 400)
    return JSONResponse(status_code=status_code, content={"error": exc.code, "message": str(exc)})

async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": code, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )

async def store_error_handler(request: Request, exc: StoreError):
    logger.error(f"Unhandled store error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": "INTERNAL_SERVER_ERROR", "message": "Internal Server Error"})


app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(ServiceError, service_error_handler)
app.add_exception_handler(StoreError, store_error_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)

app.include_router(attendance.router, prefix="/api/v1")
app.include_router(logs.router, prefix="/api/v1")

@app.get("/health", tags=["System"])
def health_check():
    """Liveness probe."""
    return {"status": "ok", "message": "Attendance Audit API is running."}
