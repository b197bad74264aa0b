"""Health check endpoint handler."""

from datetime import UTC, datetime

from fastapi.responses import JSONResponse

from apple_signin.models.health import HealthCheckResponse
from apple_signin.registry.strategy_registry import StrategyRegistry


async def health_check(registry: StrategyRegistry) -> JSONResponse:
    """
    Handles the health check request.
    Returns a JSON response with the server's health status.
    """
    response_model = HealthCheckResponse(
        status="healthy",
        version="0.1.0",
        timestamp=datetime.now(UTC),
        providers=registry.get_provider_names(),
    )

    return JSONResponse(content=response_model.model_dump(mode="json"))
