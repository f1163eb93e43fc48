import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

import httpx
from argon2 import PasswordHasher
from fastapi import FastAPI, Request, Response
from sqlalchemy.exc import SQLAlchemyError

from oggole.auth import AuthService
from oggole.config import Settings, get_settings
from oggole.database import build_engine, build_session_factory, init_db
from oggole.exceptions import StorageError, register_exception_handlers
from oggole.logging_config import setup_logging
from oggole.metrics import Metrics
from oggole.routers import auth_router, pages_router, search_router, weather_router
from oggole.search import DocumentIndex, SearchService
from oggole.security import build_password_hasher
from oggole.weather import WeatherCache

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    # Startup: Initialize database
    init_db(app.state.engine)
    app.state.metrics.service_up.set(1)
    try:
        app.state.metrics.pages_in_database.set(app.state.document_index.count_pages())
    except SQLAlchemyError:
        logger.warning("Could not read initial page count", exc_info=True)
    try:
        app.state.auth_service.cleanup_expired_sessions()
    except StorageError:
        logger.warning("Skipped expired session cleanup at startup")
    logger.info("Oggole started (%s)", app.state.settings.environment)
    yield
    # Shutdown: release the upstream client and the connection pool
    app.state.metrics.service_up.set(0)
    app.state.http_client.close()
    app.state.engine.dispose()


def create_app(
    settings: Optional[Settings] = None,
    password_hasher: Optional[PasswordHasher] = None,
    http_client: Optional[httpx.Client] = None,
) -> FastAPI:
    """
    Build the application and every service it owns.

    Tests pass their own settings, a cheap hasher and an httpx client
    with a mock transport.
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level)

    app = FastAPI(
        title="Oggole",
        description="Search engine with accounts and a weather widget",
        version=VERSION,
        lifespan=lifespan,
    )

    engine = build_engine(settings.database_url, echo=settings.debug)
    session_factory = build_session_factory(engine)
    metrics = Metrics()
    http_client = http_client or httpx.Client(timeout=settings.weather_timeout_seconds)
    document_index = DocumentIndex(session_factory)

    app.state.settings = settings
    app.state.engine = engine
    app.state.metrics = metrics
    app.state.http_client = http_client
    app.state.document_index = document_index
    app.state.auth_service = AuthService(
        session_factory,
        password_hasher or build_password_hasher(settings),
        session_lifetime=timedelta(hours=settings.session_expire_hours),
    )
    app.state.search_service = SearchService(
        document_index,
        metrics,
        max_query_length=settings.search_max_query_length,
        result_limit=settings.search_result_limit,
    )
    app.state.weather_cache = WeatherCache(
        http_client,
        settings.weather_api_key,
        settings.weather_latitude,
        settings.weather_longitude,
        base_url=settings.weather_api_base_url,
        ttl=timedelta(minutes=settings.weather_cache_minutes),
        timeout=settings.weather_timeout_seconds,
    )

    register_exception_handlers(app)

    @app.middleware("http")
    async def count_requests(request: Request, call_next):
        response = await call_next(request)
        route = request.scope.get("route")
        endpoint = route.path if route is not None else "unmatched"
        metrics.record_request(endpoint, response.status_code)
        return response

    # Register routers
    app.include_router(auth_router.router)
    app.include_router(search_router.router)
    app.include_router(weather_router.router)
    app.include_router(pages_router.router)

    @app.get("/health")
    async def health():
        """
        Health check endpoint.
        """
        return {
            "status": "running",
            "version": VERSION,
        }

    @app.get("/metrics", include_in_schema=False)
    async def prometheus_metrics():
        payload, content_type = metrics.render()
        return Response(content=payload, media_type=content_type)

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "oggole.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8080,
        reload=get_settings().debug,
    )
