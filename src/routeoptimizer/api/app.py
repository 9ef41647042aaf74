"""FastAPI application factory."""

import time
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import ORJSONResponse

from routeoptimizer.config import Settings, settings as default_settings
from routeoptimizer.core.exceptions import install_exception_handlers
from routeoptimizer.core.logging import get_logger, request_logging_middleware, setup_logging_from_settings
from routeoptimizer.db import close_db, create_engine_from_settings, create_session_maker, init_db
from routeoptimizer.services import (
    EngineClient,
    EventPublisher,
    InMemoryJobStore,
    JobOrchestrator,
    JobStore,
    OrchestratorContext,
    SQLAlchemyJobStore,
    StatusQueryService,
)


# Initialize logging early
setup_logging_from_settings(default_settings)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: build the job context, tear it down on exit."""
    settings: Settings = app.state.settings
    logger.info(
        "Starting RouteOptimizer",
        version=settings.app_version,
        env=settings.env,
        max_concurrent_jobs=settings.optimization.max_concurrent_jobs,
        worker_pool_size=settings.optimization.worker_pool_size,
    )

    # Startup
    db_engine = None
    if settings.database.backend == "memory":
        store: JobStore = InMemoryJobStore()
    else:
        db_engine = create_engine_from_settings(settings.database)
        await init_db(db_engine)
        store = SQLAlchemyJobStore(create_session_maker(db_engine))

    engine_client = EngineClient.from_settings(settings.engine, transport=app.state.engine_transport)
    context = OrchestratorContext.create(settings, store, engine_client, app.state.publisher)
    orchestrator = JobOrchestrator(context)

    app.state.started_at = time.monotonic()
    app.state.context = context
    app.state.orchestrator = orchestrator
    app.state.status_service = StatusQueryService(store, context.registry, settings.polling)

    logger.info("RouteOptimizer started successfully", store=type(store).__name__)

    yield

    # Shutdown
    logger.info("Shutting down RouteOptimizer")
    await orchestrator.shutdown()
    await engine_client.aclose()
    if db_engine is not None:
        await close_db(db_engine)
    logger.info("RouteOptimizer shutdown complete")


def create_app(
    settings: Settings | None = None,
    engine_transport: httpx.AsyncBaseTransport | None = None,
    publisher: EventPublisher | None = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        settings: Settings to use instead of the environment-loaded instance
        engine_transport: httpx transport for the engine client (tests mock it)
        publisher: Lifecycle event sink; defaults to structured logging
    """
    settings = settings or default_settings

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Asynchronous route optimization job service",
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine_transport = engine_transport
    app.state.publisher = publisher

    # Exception handlers
    install_exception_handlers(app, include_trace=settings.debug)

    # Middleware (order matters - last added is first executed)
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=settings.security.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request id + structured request logging
    app.middleware("http")(request_logging_middleware)

    # Include routers
    from routeoptimizer.api.routes import (
        health_router,
        optimize_router,
        jobs_router,
        system_router,
    )

    app.include_router(health_router)
    app.include_router(optimize_router, prefix=settings.api_prefix)
    app.include_router(jobs_router, prefix=settings.api_prefix)
    app.include_router(system_router, prefix=settings.api_prefix)

    return app


# Application instance
app = create_app()
