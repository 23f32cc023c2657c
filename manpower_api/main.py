from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from manpower_api.config.logging import get_logger, setup_logging
from manpower_api.config.settings import Settings, get_settings, settings
from manpower_api.infra.store import Store, create_store
from manpower_api.v1.core.exceptions import (
    ComputeQueueException,
    RequestContextMiddleware,
    compute_queue_exception_handler,
    general_exception_handler,
    http_exception_handler,
)
from manpower_api.v1.core.registries import RecomputeCallback, recompute_registry
from manpower_api.v1.healthz import router as health_router
from manpower_api.v1.infra.jobs import registry_init  # noqa: F401
from manpower_api.v1.infra.jobs.handlers import build_recompute
from manpower_api.v1.infra.jobs.routes import router as queue_router
from manpower_api.v1.infra.jobs.service import QueueService
from manpower_api.v1.infra.jobs.worker import JobProcessor

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the processor with the app and release the store on shutdown."""
    app_settings: Settings = app.state.settings
    processor: JobProcessor = app.state.processor

    if app_settings.processor_autostart:
        await processor.start()

    try:
        yield
    finally:
        await processor.stop()
        await app.state.store.close()
        logger.info("Application shutdown complete")


def create_app(
    app_settings: Settings | None = None,
    store: Store | None = None,
    recompute: RecomputeCallback | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    The store and recompute callback can be supplied directly; otherwise
    they are built from settings.
    """
    app_settings = app_settings or settings

    # Initialize structured logging
    setup_logging()

    app = FastAPI(
        title=app_settings.app_name,
        description="Durable recompute queue for manpower timekeeping totals",
        version=app_settings.version,
        debug=app_settings.debug,
        lifespan=lifespan,
        # All endpoints will be under /v1/ prefix
        openapi_url="/v1/openapi.json" if app_settings.debug else None,
        docs_url="/v1/docs" if app_settings.debug else None,
        redoc_url="/v1/redoc" if app_settings.debug else None,
    )

    store = store or create_store(app_settings)
    service = QueueService(store, app_settings)
    recompute = recompute or build_recompute(app_settings, store)

    app.state.settings = app_settings
    app.state.store = store
    app.state.queue_service = service
    app.state.processor = JobProcessor(service, recompute, app_settings)

    app.dependency_overrides[get_settings] = lambda: app_settings

    # Add middleware
    app.add_middleware(RequestContextMiddleware)

    # Add CORS middleware for development
    if app_settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Add exception handlers
    app.add_exception_handler(ComputeQueueException, compute_queue_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include routers with /v1 prefix
    app.include_router(health_router, prefix="/v1", tags=["health"])
    app.include_router(queue_router, prefix="/v1")

    # Freeze registries in non-development environments to prevent runtime modifications
    if app_settings.environment != "development":
        recompute_registry.freeze()

    return app


def run() -> None:
    """Entry point for serving the API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "manpower_api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
    )


# Create the app instance
app = create_app()


if __name__ == "__main__":
    run()
