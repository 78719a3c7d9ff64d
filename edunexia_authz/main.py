"""
FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from edunexia_authz.core.config import Settings, get_settings
from edunexia_authz.core.auth import AuthRegistry, PolicyCache
from edunexia_authz.core.interfaces import AttributeSource, PolicyStore
from edunexia_authz.api.routes import router as api_router
from edunexia_authz.api.middleware import LoggingMiddleware, RequestIdMiddleware
from edunexia_authz.implementations.policy_store import DatabasePolicyStore
from edunexia_authz.implementations.register import create_attribute_source
from edunexia_authz.models.database import close_db, create_engine, create_session_factory, init_db
from edunexia_authz.utils.context import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events."""
    engine = app.state.engine
    if engine is not None:
        await init_db(engine)

    logger.info(
        "Authorization service started",
        environment=app.state.settings.environment,
        attribute_source=app.state.settings.authz.attribute_source,
    )

    yield

    if app.state.attribute_source is not None:
        await app.state.attribute_source.close()
    if engine is not None:
        await close_db(engine)


def create_app(
    settings: Settings | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    policy_store: PolicyStore | None = None,
    attribute_source: AttributeSource | None = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        settings: Defaults to environment settings
        session_factory: Use an existing database instead of DB_URL
        policy_store: Defaults to the database store
        attribute_source: Defaults to AUTHZ_ATTRIBUTE_SOURCE
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_format)

    engine = None
    if session_factory is None:
        engine = create_engine(settings.database)
        session_factory = create_session_factory(engine)

    if policy_store is None:
        policy_store = DatabasePolicyStore(session_factory)
    if attribute_source is None:
        attribute_source = create_attribute_source(settings.authz)

    policy_cache = PolicyCache(policy_store, ttl=settings.authz.cache_ttl)
    policy_engine = AuthRegistry.get_policy_engine(
        settings.authz.policy_engine,
        cache=policy_cache,
        manage_implies_all=settings.authz.manage_implies_all,
        superuser_role=settings.authz.superuser_role,
    )

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.policy_store = policy_store
    app.state.policy_cache = policy_cache
    app.state.policy_engine = policy_engine
    app.state.attribute_source = attribute_source

    # Middleware (order matters - last added is outermost)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    app.include_router(api_router, prefix="/api")

    # Exception handlers
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler."""
        logger.exception("Unhandled error", path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": str(exc) if settings.debug else "An error occurred",
            },
        )

    @app.get("/health")
    async def health_check():
        """Quick health check endpoint (for load balancers)."""
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "edunexia_authz.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
