from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from ecoquest_api.core.settings import settings
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .services.economy import EconomyError
from .services.notifications import RedisEventPublisher, build_default_sink


APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    sink = getattr(app.state, "notification_sink", None)
    owns_sink = sink is None
    if owns_sink:
        sink = build_default_sink()
        app.state.notification_sink = sink

    if settings.realtime_enabled:
        logger.info(
            "Realtime fan-out enabled",
            publisher=type(sink).__name__,
            channel_prefix=settings.realtime_channel_prefix,
        )
    else:
        logger.info("Realtime fan-out disabled", reason="realtime_enabled is false")

    try:
        yield
    finally:
        if owns_sink and isinstance(sink, RedisEventPublisher):
            await sink.aclose()


async def _handle_economy_error(request: Request, exc: EconomyError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


def create_app() -> FastAPI:
    """Application factory for the EcoQuest points economy service."""
    configure_logging(
        service_name="ecoquest-api",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="EcoQuest API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="ecoquest-api",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.add_exception_handler(EconomyError, _handle_economy_error)
    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
