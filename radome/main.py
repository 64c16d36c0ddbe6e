#!/usr/bin/env python3
"""
Radome - Main Entry Point

This is the thin orchestration layer that:
1. Loads configuration
2. Initializes modules
3. Runs the control API and proxy listeners

All business logic is in the modules, following black box principles.
"""

import asyncio
import logging
import logging.config as log_config
from contextlib import asynccontextmanager

import redis.asyncio as redis
import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from radome import __version__
from radome.config.provider import ConfigProvider, EnvConfigProvider
from radome.errors import ClusterQueryError
from radome.logging_config import get_logging_config
from radome.modules.api.control import create_control_router
from radome.modules.api.models import TargetMode
from radome.modules.catalog import CatalogModule
from radome.modules.config import get_config
from radome.modules.directory import InstanceDirectory, StatusPoller
from radome.modules.kube import KubeModule
from radome.modules.middleware import create_api_key_middleware
from radome.modules.proxy import ProxyDispatcher, create_proxy_app
from radome.modules.routing import BackendTargetResolver, IdentifierResolver

# Get configuration
config = get_config()

log_config.dictConfig(get_logging_config(config.get("log_level")))
logger = logging.getLogger("radome.main")

# Configuration provider (centralized config access)
config_provider: ConfigProvider = EnvConfigProvider()
proxy_config = config_provider.get_proxy_config()
auth_config = config_provider.get_auth_config()

# Module instances (clients connect at startup)
kube_module = KubeModule(config_provider.get_kube_settings())
directory = InstanceDirectory(
    kube_module,
    namespace=config.get("namespace"),
    image_pull_secret=config.get("image_pull_secret"),
)
dispatcher = ProxyDispatcher(
    directory=directory,
    identifiers=IdentifierResolver(proxy_config),
    targets=BackendTargetResolver(TargetMode(proxy_config.target_mode), kube_module),
)
poller = StatusPoller(directory, interval=config.get("status_poll_interval"))


def get_redis_client() -> redis.Redis:
    """Create Redis client from configuration."""
    redis_url = f"redis://{config.get('redis_host')}:{config.get('redis_port')}/{config.get('redis_db')}"

    return redis.from_url(
        redis_url,
        password=config.get("redis_password"),
        encoding="utf-8",
        decode_responses=True,
    )


redis_client = get_redis_client()
catalog_module = CatalogModule(redis_client)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle - initialize and cleanup resources.
    """
    logger.info("Starting Radome control plane...")

    if not kube_module.load():
        logger.error("Kubernetes client not configured; instance operations will fail")
    elif config.get("sync_on_start"):
        try:
            await directory.sync_all()
        except ClusterQueryError as e:
            logger.error(f"Initial directory sync failed: {e.message}")

    try:
        await catalog_module.seed_defaults()
    except redis.ConnectionError as e:
        logger.error(f"Could not seed image catalog: {e}")

    poller.start()
    logger.info(
        f"Proxy routing *.{proxy_config.base_domain}"
        + (f" and {proxy_config.path_prefix}/:id" if proxy_config.path_prefix else "")
        + f" in {proxy_config.target_mode} mode ({proxy_config.routing_precedence} first)"
    )

    yield

    logger.info("Shutting down Radome control plane...")
    await poller.stop()
    await dispatcher.aclose()
    await redis_client.aclose()
    logger.info("Radome shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Radome Control API",
    description="Radome - Agent workloads on Kubernetes",
    version=__version__,
    lifespan=lifespan,
)

if auth_config.enabled:
    auth_middleware = create_api_key_middleware(auth_config.api_keys)

    @app.middleware("http")
    async def authentication_middleware(request, call_next):
        return await auth_middleware(request, call_next)
else:
    logger.warning("RADOME_API_KEYS not set; control API is unauthenticated")

app.include_router(
    create_control_router(directory, catalog_module, proxy_config, config.get("proxy_port"))
)

# Proxy listener application
proxy_app = create_proxy_app(dispatcher)


# Health/Monitoring Endpoints


@app.get("/healthz")
async def healthz():
    """
    Minimal health check endpoint for Kubernetes readiness/liveness probes.

    Returns:
        200: Service is running
    """
    return {"status": "ok"}


@app.get("/health")
async def health_check():
    """
    Health check with dependency status.

    Returns:
        200: Service healthy
        503: Redis or Kubernetes client unavailable
    """
    try:
        await redis_client.ping()
        redis_status = "connected"
    except redis.RedisError as e:
        logger.warning(f"Health check: Redis unavailable: {e}")
        redis_status = "disconnected"

    kube_status = "configured" if kube_module.configuration is not None else "unconfigured"
    body = {
        "redis": redis_status,
        "kubernetes": kube_status,
        "instances": len(directory.snapshot()),
        "targetMode": proxy_config.target_mode,
        "version": __version__,
    }
    if redis_status == "connected" and kube_status == "configured":
        return {"status": "ok", **body}
    return JSONResponse(status_code=503, content={"status": "unhealthy", **body})


# Error handlers


@app.exception_handler(redis.ConnectionError)
async def redis_error_handler(request, exc):
    """Handle Redis connection errors."""
    logger.error(f"Redis connection error: {exc}")
    return JSONResponse(status_code=503, content={"error": "Catalog store unavailable"})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Report payload validation errors as 400."""
    logger.debug(f"Validation error: {exc}")
    return JSONResponse(
        status_code=400,
        content={"error": "invalid payload", "details": jsonable_encoder(exc.errors())},
    )


async def serve() -> None:
    """Run the control API and proxy listeners in one event loop."""
    logging_config = get_logging_config(config.get("log_level"))
    control_server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=config.get("host"),
            port=config.get("control_port"),
            log_level=config.get("log_level").lower(),
            log_config=logging_config,
        )
    )
    proxy_server = uvicorn.Server(
        uvicorn.Config(
            proxy_app,
            host=config.get("host"),
            port=config.get("proxy_port"),
            log_level=config.get("log_level").lower(),
            log_config=logging_config,
            lifespan="off",
            proxy_headers=False,
        )
    )
    await asyncio.gather(control_server.serve(), proxy_server.serve())


def run() -> None:
    asyncio.run(serve())


if __name__ == "__main__":
    run()
