"""Health check endpoints."""

from fastapi import APIRouter, status
from pydantic import BaseModel

from medbook.config import settings
from medbook.core.country_databases import CountryEnginePool
from medbook.core.redis_client import check_redis_connection
from medbook.database import check_database_connection
from medbook.schemas.appointments import CountryISO

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str


class DetailedHealthResponse(BaseModel):
    """Detailed health check response model."""

    status: str
    version: str
    environment: str
    database: str
    redis: str
    schedule_stores: dict[str, str]


def _label(healthy: bool) -> str:
    return "healthy" if healthy else "unhealthy"


async def check_schedule_stores(engine_pool: CountryEnginePool | None = None) -> dict[str, bool]:
    """
    Check every country schedule store.

    Engines opened for the check are released afterwards.
    """
    engine_pool = engine_pool or CountryEnginePool()
    results: dict[str, bool] = {}
    try:
        for country in CountryISO:
            results[country.value] = await engine_pool.check(country)
    finally:
        await engine_pool.release_all()
    return results


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Basic health check",
)
async def health_check() -> HealthResponse:
    """
    Basic health check endpoint.

    Returns:
        Basic health status
    """
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Detailed health check",
)
async def detailed_health_check() -> DetailedHealthResponse:
    """
    Detailed health check with appointment store, Redis and schedule store status.

    Returns:
        Detailed health status including dependencies
    """
    db_healthy = await check_database_connection()
    redis_healthy = await check_redis_connection()
    stores = await check_schedule_stores()

    all_healthy = db_healthy and redis_healthy and all(stores.values())
    return DetailedHealthResponse(
        status="healthy" if all_healthy else "degraded",
        version=settings.app_version,
        environment=settings.environment,
        database=_label(db_healthy),
        redis=_label(redis_healthy),
        schedule_stores={country: _label(ok) for country, ok in stores.items()},
    )


@router.get(
    "/ping",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Simple ping",
)
async def ping() -> dict[str, str]:
    """
    Simple ping endpoint.

    Returns:
        Pong response
    """
    return {"message": "pong"}
