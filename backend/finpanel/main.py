"""
FastAPI Application Entry Point.

This is the main application file for the Financial Panel Backend.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Depends
from redis.asyncio import Redis
from redis.exceptions import RedisError
from fastapi.exceptions import RequestValidationError
from backend.finpanel.core.config import settings
from backend.finpanel.api.router import router as api_router
from backend.finpanel.api.endpoints import pages
from backend.finpanel.db.session import engine, Base
from backend.finpanel.core.observability import ObservabilityMiddleware, configure_logging
from backend.finpanel.core.redis_client import redis_client, get_redis
from backend.finpanel.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from backend.finpanel.models.user import User  # noqa: F401
from backend.finpanel.models.system_setting import SystemSetting  # noqa: F401
from backend.finpanel.models.audit_log import AuditLog  # noqa: F401
from backend.finpanel.models.budget import Budget, BudgetItem  # noqa: F401
from backend.finpanel.models.transaction import Transaction  # noqa: F401
from backend.finpanel.models.remittance import Remittance  # noqa: F401
from backend.finpanel.models.notification import Notification  # noqa: F401

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Closes the Redis connection pool on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await redis_client.aclose()
    await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug,
    description="Budgets, remittances and a shared fund pool with a full audit trail",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check(redis: Redis = Depends(get_redis)):
    """
    Health check endpoint.

    Returns:
        dict: Status, application information and Redis reachability
    """
    try:
        redis_ok = bool(await redis.ping())
    except (RedisError, OSError):
        redis_ok = False

    return {
        "status": "healthy",
        "redis": "ok" if redis_ok else "unavailable",
        "app_name": settings.app_name,
        "version": settings.app_version,
    }


app.include_router(api_router, prefix=settings.api_prefix)
app.include_router(pages.router)


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to the Financial Panel API",
        "docs": "/docs",
        "health": "/health",
    }
