"""
Billing Ledger Backend — Root and Health Check Routes
======================================================

What:  GET / (plain liveness text) and GET /health (dependency status).
Who:   Load balancers, container health checks, humans with curl.

Status levels:
    healthy:   database reachable (HTTP 200)
    unhealthy: database unreachable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from ledger import __version__
from ledger.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get("/", response_class=PlainTextResponse, summary="Liveness message")
async def root() -> str:
    return "Billing ledger backend is running"


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse}},
    summary="Service health check",
)
async def health_check(request: Request):
    """
    Probes the database with SELECT 1 and reports uptime.
    """
    database = request.app.state.database
    reachable = await database.is_reachable()

    body = HealthResponse(
        status="healthy" if reachable else "unhealthy",
        version=__version__,
        database="connected" if reachable else "disconnected",
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    if not reachable:
        return JSONResponse(status_code=503, content=body.model_dump())
    return body
