"""Service root and health probes.

These routes sit outside the versioned API and need no API key.
"""

from fastapi import APIRouter

from rsywx.core.database import check_db_connection
from rsywx.dependencies import AppSettingsDep
from rsywx.schemas.common import HealthCheckResponse
from rsywx.services.cache import get_cache_service

router = APIRouter()


@router.get("/", tags=["Root"], summary="API root")
async def root(settings: AppSettingsDep) -> dict[str, str]:
    """Service name, version and where to find the docs and probes."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "api": settings.api_prefix,
        "docs": "/docs",
        "health": "/health/live",
    }


@router.get("/health/live", tags=["Health"], summary="Liveness probe")
@router.get("/health", tags=["Health"], include_in_schema=False)
async def liveness() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/health/ready",
    tags=["Health"],
    summary="Readiness probe",
    response_model=HealthCheckResponse,
)
async def readiness() -> HealthCheckResponse:
    """Check the database and the cache backend.

    A missing cache only degrades readiness: cache failures fail open and
    every request can still be answered from the database.
    """
    database_ok = await check_db_connection()
    try:
        await get_cache_service().stats()
        cache_ok = True
    except RuntimeError:
        cache_ok = False

    if not database_ok:
        overall = "error"
    elif not cache_ok:
        overall = "degraded"
    else:
        overall = "ok"

    return HealthCheckResponse(
        status=overall,
        checks={
            "database": "ok" if database_ok else "error",
            "cache": "ok" if cache_ok else "error",
        },
    )
