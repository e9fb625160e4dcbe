"""
Live statistics router.

GET  /api/stats          — current snapshot
POST /api/stats/reset    — zero every counter
WS   /ws/stats           — snapshot on connect, then one push per broadcast tick
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from telesense.core.runtime import Runtime, get_runtime, get_ws_runtime
from telesense.schemas.stats import StatsSnapshot

logger = logging.getLogger(__name__)

router = APIRouter(tags=["stats"])


@router.get(
    "/api/stats",
    response_model=StatsSnapshot,
    summary="Current live statistics",
)
def get_stats_snapshot(runtime: Runtime = Depends(get_runtime)):
    return runtime.stats.get_snapshot(runtime.settings.TOP_RISK_DRIVERS)


@router.post("/api/stats/reset", summary="Reset live statistics")
def reset_stats(runtime: Runtime = Depends(get_runtime)):
    runtime.stats.reset()
    logger.info("Live statistics reset")
    return {"status": "reset"}


@router.websocket("/ws/stats")
async def stats_stream(websocket: WebSocket, runtime: Runtime = Depends(get_ws_runtime)):
    manager = runtime.manager
    await manager.connect(websocket)
    try:
        snapshot = runtime.stats.get_snapshot(runtime.settings.TOP_RISK_DRIVERS)
        await manager.send(websocket, snapshot.model_dump_json())
        # Client messages are ignored; reading only detects the disconnect.
        # A subscriber dropped by the broadcaster leaves the set and is closed.
        while websocket in manager.connections:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket)
