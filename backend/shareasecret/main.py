from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import inspect

from shareasecret.config import settings
from shareasecret.database import engine
from shareasecret.dependencies import get_store
from shareasecret.errors import PersistenceFailure
from shareasecret.logging_config import setup_logging
from shareasecret.middleware.logging import (
    CORRELATION_ID_HEADER,
    LoggingMiddleware,
    current_correlation_id,
    redact_path,
)
from shareasecret.routers import pages, secrets
from shareasecret.scheduler import shutdown_scheduler, start_scheduler
from shareasecret.services.alert_service import send_error_alert
from shareasecret.services.secret_store import SecretStore

# Database tables are managed by Alembic migrations
# Run: alembic upgrade head

REQUIRED_TABLES = {"secrets"}

logger = structlog.get_logger()


def check_database_tables() -> None:
    """Fail fast when migrations haven't been applied."""
    tables = set(inspect(engine).get_table_names())
    missing = REQUIRED_TABLES - tables
    if missing:
        raise RuntimeError(
            f"Database tables missing: {', '.join(sorted(missing))}. "
            "Run `alembic upgrade head` before starting the server."
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the shared secret store, start the expiry sweeper, and tear both down."""
    setup_logging()
    check_database_tables()

    store = SecretStore(engine, ttl_gates_visibility=settings.ttl_gates_visibility)
    app.state.store = store
    if settings.scheduler_enabled:
        start_scheduler(store)

    yield

    shutdown_scheduler()
    engine.dispose()


app = FastAPI(
    title="shareasecret",
    description="Share client-side encrypted secrets through separate viewing and management links",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    correlation_id = current_correlation_id()
    path = redact_path(request.url.path)
    logger.error("unhandled_exception", path=path, error=type(exc).__name__, exc_info=exc)
    await send_error_alert(
        error_type=type(exc).__name__,
        message="Unhandled exception",
        path=path,
        correlation_id=correlation_id,
        status_code=500,
    )

    headers = {CORRELATION_ID_HEADER: correlation_id} if correlation_id else None
    return JSONResponse(
        status_code=500, content={"detail": "Internal Server Error"}, headers=headers
    )


app.add_middleware(LoggingMiddleware)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(pages.router, tags=["pages"])
app.include_router(secrets.router, tags=["secrets"])


@app.get("/health")
def health_check(store: SecretStore = Depends(get_store)):
    try:
        active = store.count_active()
    except PersistenceFailure as e:
        logger.error("health_check_failed", error=str(e))
        return JSONResponse(status_code=503, content={"status": "unhealthy"})
    return {"status": "healthy", "active_secrets": active}
