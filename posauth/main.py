"""posauth - FastAPI Application Factory."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from posauth.api import api_router
from posauth.api.error_handling import register_exception_handlers
from posauth.api.health import router as health_router
from posauth.core import async_session_maker, dispose_engine, settings, setup_logging
from posauth.core.logging import get_logger
from posauth.middleware import SecurityHeadersMiddleware

# Import all models to ensure they're registered with Base for Alembic
from posauth.models import TokenBlacklist, User  # noqa: F401
from posauth.services.auth import AuthService
from posauth.services.errors import AuthError
from posauth.services.revocation import RevocationLedger
from posauth.services.tokens import get_token_issuer

logger = get_logger("main")


def task_done_callback(task: asyncio.Task[None]) -> None:
    """Log unhandled exceptions from background tasks."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Background task {task.get_name()} failed: {exc}")


async def sweep_revocation_ledger() -> int:
    """Remove ledger entries whose tokens have expired on their own."""
    async with async_session_maker() as db:
        removed = await RevocationLedger(db).sweep_expired()
        await db.commit()
    return removed


async def _revocation_sweep_loop(interval: int) -> None:
    """Periodically remove expired entries from the revocation ledger."""
    while True:
        await asyncio.sleep(interval)
        try:
            removed = await sweep_revocation_ledger()
            if removed > 0:
                logger.info(f"Cleaned up {removed} expired revocation entries")
        except Exception:
            logger.exception("Error cleaning up revocation ledger")


async def bootstrap_admin() -> None:
    """Create the configured admin account if the store has none."""
    username = settings.bootstrap_admin_username
    password = settings.bootstrap_admin_password
    if not username or not password:
        return

    async with async_session_maker() as db:
        service = AuthService(db, get_token_issuer())
        try:
            await service.bootstrap_admin(username, password)
        except AuthError:
            logger.exception("Bootstrap admin could not be created")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    setup_logging(level=settings.log_level, format_type=settings.log_format)
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    for warning in settings.check_security_configuration():
        logger.warning(f"SECURITY: {warning}")

    await bootstrap_admin()

    sweep_task = asyncio.create_task(
        _revocation_sweep_loop(settings.revocation_sweep_interval_seconds),
        name="revocation-sweep",
    )
    sweep_task.add_done_callback(task_done_callback)

    yield

    logger.info("Shutting down...")
    sweep_task.cancel()
    try:
        await sweep_task
    except asyncio.CancelledError:
        pass

    await dispose_engine()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Staff authentication and session revocation for the POS back-office",
        version=settings.app_version,
        lifespan=lifespan,
        # API schema is only published in debug builds
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )

    app.add_middleware(SecurityHeadersMiddleware, docs_enabled=settings.debug)

    # CORS middleware - MUST be outermost (added last in Starlette LIFO order)
    # so that CORS headers are present on 401/403 responses too.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
    )

    register_exception_handlers(app)

    app.include_router(health_router)  # Health at root level
    app.include_router(api_router)  # API at /api

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint with API information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
        }

    return app


# Application instance
app = create_app()
