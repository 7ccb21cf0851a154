"""FastAPI server for the harvest pipeline.

Main entry point for the API server.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import uuid4

from fastapi import FastAPI, Request

from harvest_api.errors import install_error_handlers
from harvest_api.routes import derived, health, processing, units
from harvest_config import EngineConfig, get_active_config
from harvest_kernel import __version__
from harvest_kernel.db.engine import get_engine, init_engine_from_url
from harvest_kernel.domain.clock import Clock, SystemClock
from harvest_kernel.logging_config import LogContext, configure_logging, get_logger

logger = get_logger("api.server")

REQUEST_ID_HEADER = "X-Request-Id"


def _ensure_engine(config: EngineConfig) -> None:
    try:
        get_engine()
    except RuntimeError:
        db = config.database
        init_engine_from_url(
            db.url,
            echo=db.echo,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
            pool_recycle=db.pool_recycle,
        )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    config: EngineConfig = app.state.config
    configure_logging(level=config.logging.level)
    _ensure_engine(config)
    logger.info("api_started", extra={"config_source": config.source})

    yield

    logger.info("api_stopped")


def create_app(config: EngineConfig | None = None, clock: Clock | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    config = config or get_active_config()

    app = FastAPI(
        title=config.api.title,
        description="Batch lifecycle and exclusive unit assignment for the harvest pipeline",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.clock = clock or SystemClock()

    @app.middleware("http")
    async def bind_request_context(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        with LogContext.bind(request_id=request_id):
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    install_error_handlers(app)

    app.include_router(health.router, tags=["Health"])
    app.include_router(units.router, prefix="/units", tags=["Units"])
    app.include_router(processing.router, prefix="/batches", tags=["Processing"])
    app.include_router(
        derived.packaging_router, prefix="/packaging-batches", tags=["Packaging"]
    )
    app.include_router(
        derived.labeling_router, prefix="/labeling-batches", tags=["Labeling"]
    )

    return app


def main() -> None:
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
