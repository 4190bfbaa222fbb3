"""
Travel Log Backend — Health Check Route
=========================================

What:  GET /health for container health checks and load balancers.
How:   Runs SELECT 1 against the store; 200 when it answers, 503 otherwise.
"""

import logging
import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from travel_log import __version__
from travel_log.schemas.log_entry import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "Store unreachable", "model": HealthResponse}},
    summary="Service health check",
)
async def health_check(request: Request):
    db_status = "connected"
    try:
        await request.app.state.database.ping()
    except Exception as e:
        db_status = "disconnected"
        logger.warning("Health check: database unreachable: %s", str(e))

    body = HealthResponse(
        status="healthy" if db_status == "connected" else "unhealthy",
        version=__version__,
        database=db_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    if db_status != "connected":
        return JSONResponse(status_code=503, content=body.model_dump())
    return body
