"""
EDS share server FastAPI application entry point.

Persists and shares diagrams: shares, versions, sessions, teams and admin.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from share_server import __version__
from share_server.api.errors import register_error_handlers
from share_server.config import Settings, get_settings, log_app_environment
from share_server.db.session import (
    check_db_connection,
    create_db_engine,
    create_session_factory,
    init_db,
    sanitize_dsn,
)
from share_server.services.credentials import KeySetError, OIDCVerifier

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    settings: Settings = app.state.settings
    engine = app.state.engine
    verifier: OIDCVerifier | None = app.state.verifier
    logger.info("EDS share server starting")
    log_app_environment()
    logger.info("Database: %s", sanitize_dsn(settings.database_url))
    try:
        try:
            check_db_connection(engine)
            logger.info("Database connection verified")
        except Exception as e:
            logger.critical("Database unreachable: %s", type(e).__name__)
            raise
        if settings.db_auto_create:
            init_db(engine)

        if verifier is not None:
            logger.info("Auth mode: OIDC (issuer %s)", settings.oidc_issuer_url)
            try:
                verifier.start()
            except KeySetError as e:
                # Discovery and keys are retried on the first token that needs them
                logger.warning("OIDC key set not loaded at startup: %s", e)
        else:
            logger.info("Auth mode: shared password with session cookie")
        logger.info("Allowed origin: %r", settings.allowed_origin)

        yield
    finally:
        logger.info("EDS share server shutting down")
        if verifier is not None:
            verifier.close()
        engine.dispose()
        logger.info("Database connection pool closed")


def create_app(settings: Settings | None = None, verifier: OIDCVerifier | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    The auth strategy is chosen here, once: an OIDC verifier exists only when
    issuer and client id are configured.
    """
    settings = settings or get_settings()
    if verifier is None and settings.oidc_enabled:
        verifier = OIDCVerifier(settings)

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )
    engine = create_db_engine(settings)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    app.state.verifier = verifier

    if settings.allowed_origin:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[settings.allowed_origin],
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization"],
        )

    @app.middleware("http")
    async def no_store(request: Request, call_next):
        response = await call_next(request)
        if request.url.path.startswith("/api"):
            response.headers["Cache-Control"] = "no-store"
        return response

    register_error_handlers(app)

    # Mount API routes
    from share_server.api.admin import router as admin_router
    from share_server.api.health import router as health_router
    from share_server.api.health import runtime_router
    from share_server.api.me import router as me_router
    from share_server.api.shares import router as shares_router
    from share_server.api.teams import invites_router
    from share_server.api.teams import router as teams_router

    app.include_router(shares_router, prefix="/api/shares", tags=["shares"])
    app.include_router(teams_router, prefix="/api/teams", tags=["teams"])
    app.include_router(invites_router, prefix="/api/invites", tags=["teams"])
    app.include_router(me_router, prefix="/api/me", tags=["me"])
    app.include_router(admin_router, prefix="/api/admin", tags=["admin"])
    app.include_router(health_router, prefix="/api", tags=["health"])
    app.include_router(runtime_router, tags=["runtime"])

    return app


app = create_app()
