"""
Sign In with Apple ASGI server.

Serves the auth endpoints of the registered strategies and a health check.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from apple_signin.config import get_config
from apple_signin.handlers.auth import router as auth_router
from apple_signin.handlers.health import health_check
from apple_signin.registry.strategy_registry import StrategyRegistry
from apple_signin.strategies.apple import AppleStrategy
from apple_signin.utils.logging import get_logger

logger = get_logger(__name__)


def build_registry() -> StrategyRegistry:
    """Creates the registry with the strategies enabled by the configuration."""
    config = get_config()
    registry = StrategyRegistry()
    registry.register(AppleStrategy(config.strategy_config))
    return registry


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan (startup and shutdown)."""
    logger.info("Starting sign in server", version="0.1.0")
    config = get_config()
    logger.info(
        "Configuration loaded",
        environment=config.environment,
        log_level=config.log_level,
        client_id=config.apple_client_id,
    )

    app.state.registry = build_registry()
    logger.info("Strategies registered", providers=app.state.registry.get_provider_names())
    yield
    logger.info("Shutting down sign in server")


app = FastAPI(
    title="Sign In with Apple",
    description="Runs the Sign In with Apple authorization code flow.",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(auth_router)
logger.info("Mounted auth endpoints at /auth/{provider}")

config = get_config()
if config.cors_allowed_origins:
    origins = [origin.strip() for origin in config.cors_allowed_origins.split(",")]
    logger.info("CORS middleware enabled for entire application", allowed_origins=origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.get("/health")
async def health(request: Request) -> JSONResponse:
    """Health check endpoint."""
    registry: StrategyRegistry = request.app.state.registry
    return await health_check(registry)
