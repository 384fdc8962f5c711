"""REST API routes."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from tradeflow import __version__
from tradeflow.app.api.websocket import manager
from tradeflow.app.services import CycleRunner
from tradeflow.app.storage import PredictionRepository

logger = logging.getLogger(__name__)

router = APIRouter()


class SystemStatus(BaseModel):
    """System status response."""

    status: str
    version: str
    symbol: str
    interval_seconds: float
    cycles: int
    failed_cycles: int
    skipped_cycles: int
    cycle_running: bool
    persistence: bool
    websocket_clients: int
    last_prediction: Optional[dict[str, Any]] = None


def get_runner(request: Request) -> CycleRunner:
    runner = getattr(request.app.state, "runner", None)
    if runner is None:
        raise HTTPException(status_code=503, detail="Cycle runner not started")
    return runner


def get_prediction_repo(request: Request) -> PredictionRepository | None:
    return getattr(request.app.state, "prediction_repo", None)


@router.get("/status", response_model=SystemStatus)
async def get_status(request: Request):
    """Get system status."""
    runner = get_runner(request)

    return SystemStatus(
        status="running" if runner.is_started else "idle",
        version=__version__,
        symbol=runner.symbol,
        interval_seconds=runner.interval_seconds,
        cycles=runner.cycle_count,
        failed_cycles=runner.failed_cycles,
        skipped_cycles=runner.skipped_cycles,
        cycle_running=runner.orchestrator.is_running,
        persistence=get_prediction_repo(request) is not None,
        websocket_clients=manager.connection_count,
        last_prediction=runner.last_payload,
    )


@router.get("/recent")
async def get_recent(
    request: Request,
    limit: int = Query(20, ge=1, le=500, description="Maximum predictions to return"),
) -> list[dict[str, Any]]:
    """Get recent predictions, newest first.

    Read from the database when persistence is enabled, otherwise from
    the runner's in-memory history.
    """
    repo = get_prediction_repo(request)
    if repo is not None:
        try:
            return await repo.get_recent(limit=limit)
        except Exception as e:
            logger.error(f"Failed to read recent predictions: {e}")
            raise HTTPException(status_code=503, detail="Prediction store unavailable")

    return get_runner(request).recent(limit)
