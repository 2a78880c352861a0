"""
IP Platform - FastAPI Application Entrypoint

This module initializes the FastAPI application with:
- CORS, security-header and bearer authentication middleware
- Authentication, analyst and admin routes
- Database lifecycle management and default admin seeding
- Periodic credential expiry sweep

Security: Service errors are rendered as {"detail", "error_code"}; any
other exception becomes an opaque 500 and is logged server-side.
"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from ipplatform.admin.routes import router as admin_router
from ipplatform.analyst.routes import router as analyst_router
from ipplatform.auth.accounts import ensure_default_admin
from ipplatform.auth.cleanup import token_cleanup_loop
from ipplatform.auth.database import get_engine, get_session_factory, init_db
from ipplatform.auth.errors import ServiceError
from ipplatform.auth.notifications import NotificationSink, build_notifier
from ipplatform.auth.routes import router as auth_router
from ipplatform.auth.tokens import CredentialSigner, get_signer
from ipplatform.config import settings
from ipplatform.gateway.middleware import BearerAuthMiddleware, SecurityMiddleware


logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def configure_logging(level: str = settings.LOG_LEVEL) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error_code": exc.code},
        headers=headers,
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app(
    engine: Optional[Engine] = None,
    signer: Optional[CredentialSigner] = None,
    notifier: Optional[NotificationSink] = None,
    cleanup_enabled: Optional[bool] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        engine: Database engine; defaults to one built from DATABASE_URL
        signer: Credential signer; defaults to the one built from settings
        notifier: Notification sink; defaults to SMTP or logging per settings
        cleanup_enabled: Override TOKEN_CLEANUP_ENABLED
    """
    if cleanup_enabled is None:
        cleanup_enabled = settings.TOKEN_CLEANUP_ENABLED

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup:
            - Create tables and the session factory
            - Load the signing key once into the signer
            - Seed the default admin
            - Start the expiry sweep

        Shutdown:
            - Stop the sweep and dispose an engine we created
        """
        owned_engine = engine is None
        db_engine = engine or get_engine(settings.DATABASE_URL)
        init_db(db_engine)

        app.state.db_engine = db_engine
        app.state.db_session_factory = get_session_factory(db_engine)
        app.state.signer = signer or get_signer()
        app.state.notifier = notifier or build_notifier()

        with app.state.db_session_factory() as db:
            ensure_default_admin(
                db,
                username=settings.ADMIN_DEFAULT_USERNAME,
                password=settings.ADMIN_DEFAULT_PASSWORD,
                email=settings.ADMIN_DEFAULT_EMAIL,
                name=settings.ADMIN_DEFAULT_NAME,
            )

        cleanup_task = None
        if cleanup_enabled:
            interval = settings.TOKEN_CLEANUP_INTERVAL_HOURS * 3600
            cleanup_task = asyncio.create_task(
                token_cleanup_loop(app.state.db_session_factory, interval)
            )
            logger.info("Token cleanup scheduled every %d hours", settings.TOKEN_CLEANUP_INTERVAL_HOURS)

        yield

        if cleanup_task is not None:
            cleanup_task.cancel()
            with suppress(asyncio.CancelledError):
                await cleanup_task

        if owned_engine:
            db_engine.dispose()

    app = FastAPI(
        title="IP Platform",
        description="Authentication and account core for the IP intelligence platform",
        version=VERSION,
        lifespan=lifespan,
    )

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # Added first so it runs innermost, after CORS and security headers
    app.add_middleware(BearerAuthMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "PUT", "PATCH"],
        allow_headers=["Authorization", "Content-Type"],
    )

    app.add_middleware(SecurityMiddleware)

    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(analyst_router, prefix="/api/v1")
    app.include_router(admin_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check():
        """Health check endpoint for local dev tooling."""
        return {"status": "healthy", "version": VERSION}

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "IP Platform",
            "version": VERSION,
            "docs": "/docs",
            "health": "/health",
        }

    return app


configure_logging()
app = create_app()
