"""
Health check endpoints for service monitoring.

/healthz answers as long as the process is up; /healthz/ready also checks
that the database answers a trivial query.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from caselli.config import Settings
from caselli.db.database import ping
from caselli.dependencies import get_app_settings, get_services
from caselli.services.container import Services
from caselli.utils.logging import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.get(
    "/healthz",
    response_model=Dict[str, str],
    status_code=status.HTTP_200_OK,
    summary="Health check",
    description="Returns service health status and version information",
    response_description="Service is healthy",
)
async def health_check(
    settings: Settings = Depends(get_app_settings),  # noqa: B008
) -> Dict[str, str]:
    """
    Health check endpoint for monitoring and load balancer probes.

    Example response:
        {"status": "ok", "version": "0.1.0", "environment": "production"}
    """
    logger.debug("Health check requested")

    return {
        "status": "ok",
        "version": settings.app_version,
        "environment": settings.app_env,
    }


@router.get(
    "/healthz/ready",
    status_code=status.HTTP_200_OK,
    summary="Readiness probe",
    description="Checks that the database is reachable",
    include_in_schema=False,
)
async def readiness_probe(
    services: Services = Depends(get_services),  # noqa: B008
) -> JSONResponse:
    engine = services.session_factory.kw["bind"]
    try:
        latency_ms = await ping(engine)
    except Exception as e:
        logger.warning("Readiness check failed", error=str(e))
        body: Dict[str, Any] = {"ready": False, "database": "unreachable"}
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body)

    return JSONResponse(
        content={"ready": True, "database_latency_ms": round(latency_ms, 2)}
    )
