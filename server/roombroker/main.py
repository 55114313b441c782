"""FastAPI application: worker control API and worker process lifecycle."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from .clients.aggregator import SupplierAggregator
from .clients.channel import ChannelPushClient
from .clients.notifications import SlackNotifier
from .clients.suppliers import GoGlobalClient, InnstantClient
from .core.config import Settings, settings
from .core.database import build_engine, build_session_factory, close_db, init_db
from .core.exceptions import (
    ProblemDetailsException,
    generic_exception_handler,
    problem_details_handler,
)
from .core.observability import (
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_metrics,
    setup_structured_logging,
    setup_tracing,
)
from .routers import health, metrics, workers
from .workers.supervisor import build_supervisor

# Configure structured logging
setup_structured_logging(settings)

# Configure traditional logging for compatibility
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Builds the clients and the worker supervisor once per process, starts
    the enabled workers and the health monitor, and tears everything down
    on shutdown.
    """
    config: Settings = app.state.settings
    logger.info("Starting room broker")
    logger.info(f"Environment: {config.environment}")

    try:
        setup_tracing(config)
        setup_metrics(config)
        instrument_sqlalchemy()
        logger.info("Observability setup completed")

        engine = build_engine(config.database_url)
        await init_db(engine)
        session_factory = build_session_factory(engine)
        logger.info("Database initialized successfully")

        aggregator = SupplierAggregator(
            [InnstantClient.from_settings(config), GoGlobalClient.from_settings(config)],
            timeout_seconds=config.supplier_search_timeout_seconds,
        )
        channel = ChannelPushClient.from_settings(config, session_factory)
        notifier = SlackNotifier.from_settings(config)
        supervisor = build_supervisor(config, session_factory, aggregator, channel, notifier)

        app.state.engine = engine
        app.state.session_factory = session_factory
        app.state.aggregator = aggregator
        app.state.channel = channel
        app.state.notifier = notifier
        app.state.supervisor = supervisor

        started = await supervisor.start_all()
        supervisor.start_monitoring()
        logger.info("Background workers started", extra={"workers": started})
    except Exception as e:
        logger.error(f"Failed to initialize application: {e}")
        raise

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down room broker")

    try:
        await supervisor.stop_monitoring()
        await supervisor.stop_all()
        logger.info("Background workers stopped")

        await aggregator.close()
        await channel.close()
        await notifier.close()

        await close_db(engine)
        logger.info("Database connections closed")
    except Exception as e:
        logger.error(f"Error during application cleanup: {e}")

    logger.info("Application shutdown complete")


def create_app(config: Settings = settings) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title="Room Broker",
        description="Background workers that buy hotel rooms, publish them to a channel manager, "
                    "cancel what does not sell and audit the result",
        version="1.0.0",
        debug=config.debug,
        lifespan=lifespan,
        docs_url="/docs" if config.debug else None,
        redoc_url="/redoc" if config.debug else None,
    )
    app.state.settings = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["traceparent", "tracestate"],
    )

    instrument_fastapi(app)

    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    @app.get(
        "/health",
        status_code=status.HTTP_200_OK,
        tags=["Health"],
        summary="Health Check",
        description="Check if the service is healthy and responsive",
        response_model=dict,
    )
    async def health_check():
        return {
            "status": "healthy",
            "service": "roombroker",
            "version": "1.0.0",
            "environment": config.environment,
        }

    @app.get(
        "/ready",
        status_code=status.HTTP_200_OK,
        tags=["Health"],
        summary="Readiness Check",
        description="Check that the database answers and the supervisor is up",
        response_model=dict,
    )
    async def readiness_check():
        """
        Readiness check.

        Returns:
            dict: ``ready`` when the database answers a trivial query
        """
        database = "ok"
        try:
            async with app.state.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as e:
            logger.warning(f"Readiness database check failed: {e}")
            database = "unavailable"

        return {
            "status": "ready" if database == "ok" else "not_ready",
            "service": "roombroker",
            "checks": {
                "database": database,
                "workers": "ok" if getattr(app.state, "supervisor", None) else "not_started",
            },
        }

    @app.get(
        "/info",
        status_code=status.HTTP_200_OK,
        tags=["Info"],
        summary="Service Information",
        description="Get detailed information about the service",
        response_model=dict,
    )
    async def service_info():
        supervisor = getattr(app.state, "supervisor", None)
        aggregator = getattr(app.state, "aggregator", None)
        return {
            "service": "roombroker",
            "version": "1.0.0",
            "environment": config.environment,
            "workers": supervisor.list_names() if supervisor else [],
            "auto_start": config.workers_auto_start,
            "dry_run": config.acquisition_dry_run,
            "suppliers": [s.model_dump() for s in aggregator.supplier_stats()] if aggregator else [],
            "endpoints": {
                "health": "/health",
                "readiness": "/ready",
                "info": "/info",
                "workers": "/v1/workers/",
                "metrics": "/metrics",
            },
        }

    app.include_router(health.router)
    app.include_router(workers.router)
    app.include_router(metrics.router)

    logger.info("FastAPI application created and configured")

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "roombroker.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )
