"""
NeighborHelp Backend: Health Check Route
=========================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Checks the database (SELECT 1) and asks the notifier for its local
       status. No email is sent.
Who:   Called by Docker health checks, load balancers and monitoring.

Status levels:
    - healthy:   Database reachable, notifier available (HTTP 200)
    - degraded:  Database reachable, notifier not configured or circuit open
                 (HTTP 200; messages are still stored, emails are not sent)
    - unhealthy: Database unreachable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app import __version__
from app.database import get_db_session
from app.schemas.message import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
)
async def health_check(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db_session),
) -> HealthResponse:
    db_status = "connected"
    overall = "healthy"

    # ── Check Database ────────────────────────────────────────────────────
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    # ── Check Notifier ────────────────────────────────────────────────────
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is None:
        notifier_status = "unavailable"
    else:
        notifier_status = await notifier.health_check()
    if notifier_status != "available" and overall != "unhealthy":
        overall = "degraded"

    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        notifier=notifier_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
