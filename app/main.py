import asyncio
import contextlib
import logging
import time
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.httpsredirect import HTTPSRedirectMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from app.api.router import api_router
from app.api.v1.routes import realtime
from app.core.config import Settings, get_settings
from app.core.logging import configure_logging
from app.infra.realtime import LiveDataHub
from app.services.errors import GtfsLoadError
from app.services.gtfs_service import GtfsService

API_VERSION = "1.0.0"

logger = logging.getLogger(__name__)


async def _load_gtfs(service: GtfsService) -> None:
    try:
        await asyncio.to_thread(service.load_data)
    except GtfsLoadError:
        logger.exception("GTFS data could not be loaded; live data stays unavailable")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    settings.validate_security_settings()
    settings.validate_realtime_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings)
        app.state.settings = settings
        app.state.started_at = time.monotonic()

        gtfs = GtfsService(
            settings.gtfs_data_path,
            timezone=settings.gtfs_timezone,
            live_trains_limit=settings.live_trains_limit,
        )
        hub = LiveDataHub(
            gtfs,
            tick_interval=settings.ws_update_interval_seconds,
            intake_size=settings.ws_hub_intake_size,
        )
        app.state.gtfs_service = gtfs
        app.state.live_hub = hub

        loader = asyncio.create_task(_load_gtfs(gtfs), name="gtfs-loader")
        hub_task = asyncio.create_task(hub.run(), name="live-data-hub")
        logger.info(
            "Swiss Railway API starting (environment=%s, websocket=/ws)",
            settings.app_env,
        )

        yield

        # Graceful shutdown
        logger.info("Shutting down Swiss Railway API")
        hub.stop()
        await hub_task
        if not loader.done():
            loader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await loader

    app = FastAPI(
        title="Swiss Railway Network API",
        version=API_VERSION,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )

    if settings.trusted_hosts:
        app.add_middleware(
            TrustedHostMiddleware,
            allowed_hosts=settings.trusted_hosts,
        )

    if settings.force_https:
        app.add_middleware(HTTPSRedirectMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Accept", "Authorization", "Content-Type", "X-Requested-With"],
        max_age=300,
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault(
            "Referrer-Policy",
            "strict-origin-when-cross-origin",
        )
        response.headers.setdefault(
            "Permissions-Policy",
            "camera=(), microphone=(), geolocation=()",
        )
        if settings.force_https:
            response.headers.setdefault(
                "Strict-Transport-Security",
                "max-age=31536000; includeSubDomains",
            )
        return response

    app.include_router(api_router, prefix="/api")
    app.include_router(realtime.router, tags=["realtime"])

    @app.get("/", tags=["meta"])
    async def root() -> dict[str, object]:
        return {
            "service": "swiss-railway-api",
            "version": API_VERSION,
            "environment": settings.app_env,
            "timestamp": datetime.now(UTC).isoformat(),
            "endpoints": {
                "health": "/api/v1/health",
                "ready": "/api/v1/health/ready",
                "live": "/api/v1/health/live",
                "trains": "/api/v1/trains/live",
                "stations": "/api/v1/stations",
                "websocket": "/ws",
            },
        }

    return app


app = create_app()
