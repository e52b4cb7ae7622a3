"""
routers/health.py

Health and readiness endpoints for deploys and runtime monitoring.

Non-developer summary:
----------------------
- /healthz   -> "Is the process up?" (simple yes/no)
- /readyz    -> "Can we reach the cache?" (Redis is optional)
Redis being down never makes the service unready; the cache is only an
optimization, so we report it as degraded and keep serving.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..services.container import AppServices, get_services


router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz():
    """
    Liveness probe.
    Returns 200 if the app process is running and able to respond to HTTP requests.
    No external dependencies are checked here.
    """
    return JSONResponse({"status": "ok"})


@router.get("/readyz")
async def readyz(services: AppServices = Depends(get_services)):
    """
    Readiness probe.
    - If a Redis URL is configured, pings Redis.
    - Always 200; 'status' is "degraded" when Redis is configured but unreachable.
    """
    deps = {"redis": None}

    r = services.redis
    if r is not None:
        try:
            await r.ping()
            deps["redis"] = True
        except Exception:
            deps["redis"] = False

    status_text = "degraded" if deps["redis"] is False else "ok"
    return JSONResponse({"status": status_text, "dependencies": deps})
