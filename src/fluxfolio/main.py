"""FastAPI application factory and lifespan management."""

import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fluxfolio import __version__
from fluxfolio.clients.bridge import BridgeClient
from fluxfolio.clients.contract_gateway import ContractGatewayClient
from fluxfolio.clients.near_rpc import NearRpcClient
from fluxfolio.clients.relay import RelayClient
from fluxfolio.config import settings
from fluxfolio.db.engine import create_db_engine, create_session_factory, create_tables
from fluxfolio.logging_config import configure_logging
from fluxfolio.workers.context import build_deps

# Configure logging at import time
_json_logs = os.environ.get("FLUXFOLIO_LOCAL", "0") != "1"
configure_logging(log_level=settings.log_level, json_output=_json_logs)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown resources."""
    db_url = settings.effective_database_url
    engine = create_db_engine(db_url)

    # Auto-create tables for SQLite (local dev, no migrations)
    if "sqlite" in db_url:
        await create_tables(engine)
        logger.info("SQLite tables created (local mode)")

    app.state.settings = settings
    app.state.db_engine = engine
    app.state.db_session_factory = create_session_factory(engine)

    # Redis job queue; local mode runs jobs in-process instead
    app.state.redis = None
    if not settings.local_mode:
        import redis.asyncio as aioredis
        app.state.redis = aioredis.from_url(settings.redis_url, decode_responses=True)

    timeout = settings.http_timeout
    app.state.relay = RelayClient(
        settings.relay_url,
        max_attempts=settings.finalize_max_attempts,
        base_delay=settings.finalize_base_delay,
        timeout=timeout,
    )
    app.state.near_rpc = NearRpcClient(settings.near_rpc_url, verifying_contract=settings.verifying_contract, timeout=timeout)
    app.state.bridge = BridgeClient(settings.bridge_url, timeout=timeout)
    app.state.gateway = ContractGatewayClient(settings.contract_gateway_url, timeout=max(timeout, 60.0))
    app.state.workflow_deps = build_deps(
        settings,
        app.state.db_session_factory,
        relay=app.state.relay,
        near_rpc=app.state.near_rpc,
        gateway=app.state.gateway,
    )

    consumer_task = None
    if app.state.redis is not None:
        from fluxfolio.workers.consumer import run_job_consumer
        consumer_task = asyncio.create_task(run_job_consumer(app))

    logger.info("Fluxfolio API started (db=%s)", "sqlite" if "sqlite" in db_url else "postgresql")
    yield

    # Shutdown
    if consumer_task is not None:
        consumer_task.cancel()
        try:
            await consumer_task
        except asyncio.CancelledError:
            pass
    for client in (app.state.relay, app.state.near_rpc, app.state.bridge, app.state.gateway):
        await client.aclose()
    if app.state.redis:
        await app.state.redis.close()
    await engine.dispose()
    logger.info("Fluxfolio API shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Fluxfolio API",
        version=__version__,
        description="Portfolio jobs settled through signed intents.",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from fluxfolio.api.middleware.trace_id import TraceIdMiddleware
    app.add_middleware(TraceIdMiddleware)

    # Register error handlers
    from fluxfolio.errors.handlers import register_exception_handlers
    register_exception_handlers(app)

    # Rate limiting
    from fluxfolio.api.middleware.rate_limit import setup_rate_limiter
    setup_rate_limiter(app)

    # Prometheus metrics (internal endpoint)
    try:
        from prometheus_fastapi_instrumentator import Instrumentator
        Instrumentator(
            should_group_status_codes=True,
            should_respect_env_var=False,
            excluded_handlers=["/api/v1/health.*", "/metrics"],
        ).instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
    except ImportError:
        logger.debug("prometheus-fastapi-instrumentator not installed, /metrics disabled")

    from fluxfolio.api.router import api_router
    app.include_router(api_router)

    return app


app = create_app()
