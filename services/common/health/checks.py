"""Health check implementations."""

import logging
from typing import Awaitable, Callable, Dict, Optional
from fastapi import status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[None]]


async def health_check(service_name: str = "unknown", version: Optional[str] = None) -> JSONResponse:
    """
    Basic health check endpoint.

    Args:
        service_name: Name of the service
        version: Service version, reported when given

    Returns:
        JSONResponse: Health status
    """
    content = {"status": "healthy", "service": service_name}
    if version:
        content["version"] = version
    return JSONResponse(status_code=status.HTTP_200_OK, content=content)


async def readiness_check(probes: Dict[str, Probe]) -> JSONResponse:
    """
    Readiness check - verifies service is ready to accept traffic.

    Args:
        probes: Named dependency checks; a probe is ready when it returns without raising

    Returns:
        JSONResponse: 200 when every probe passes, 503 otherwise
    """
    checks = {}
    all_ready = True

    for name, probe in probes.items():
        try:
            await probe()
            checks[name] = "ready"
        except Exception as e:
            logger.error(f"{name} readiness check failed: {e}")
            checks[name] = "not ready"
            all_ready = False

    status_code = status.HTTP_200_OK if all_ready else status.HTTP_503_SERVICE_UNAVAILABLE

    return JSONResponse(
        status_code=status_code,
        content={
            "status": "ready" if all_ready else "not ready",
            "checks": checks
        }
    )


async def liveness_check() -> JSONResponse:
    """
    Liveness check - verifies service is alive.

    Returns:
        JSONResponse: Liveness status
    """
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"status": "alive"}
    )
