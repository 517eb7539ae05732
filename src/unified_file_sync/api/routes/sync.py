"""Manual trigger and run log endpoints for the unified file sync."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, ConfigDict, Field
import structlog

from unified_file_sync.sync import SyncMode, SyncOrchestrator, SyncRunLog

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


def success_response(data: Any) -> dict[str, Any]:
    return {
        "data": data,
        "meta": {
            "requestId": str(uuid4()),
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        },
    }


class SyncRunRequest(BaseModel):
    """Body of a manual sync trigger."""

    model_config = ConfigDict(populate_by_name=True)

    mode: SyncMode
    lookback_minutes: Optional[int] = Field(None, alias="lookbackMinutes", ge=1)


async def get_sync_orchestrator(request: Request) -> SyncOrchestrator:
    orchestrator = getattr(request.app.state, "sync_orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Sync orchestrator unavailable")
    return orchestrator


@router.post("/runs")
async def trigger_sync_run(
    body: SyncRunRequest,
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
) -> dict[str, Any]:
    """Run a sync now and return the per-stage summary."""
    logger.info(
        "manual_sync_requested",
        mode=body.mode.value,
        lookback_minutes=body.lookback_minutes,
    )
    summary = await orchestrator.run(body.mode, body.lookback_minutes)
    return success_response(summary.to_dict())


@router.get("/logs")
async def list_sync_logs(
    limit: int = Query(50, ge=1, le=500),
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
) -> dict[str, Any]:
    logs: list[SyncRunLog] = await orchestrator.list_recent_logs(limit)
    return success_response({"logs": [log.to_dict() for log in logs]})
