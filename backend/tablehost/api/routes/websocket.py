"""WebSocket routes for real-time floor updates."""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from ...core import FloorEngine
from ..deps import ConnectionManager, get_connection_manager, get_engine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


async def floor_state(engine: FloorEngine, org_id: str) -> dict:
    tables = await engine.floor_status(org_id)
    waitlist = await engine.list_waitlist(org_id)
    return {
        "org_id": org_id,
        "tables": [t.to_dict() for t in tables],
        "waitlist": [e.to_dict() for e in waitlist],
        "events": [e.to_dict() for e in engine.bus.history(org_id)],
    }


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    org_id: Optional[str] = None,
    manager: ConnectionManager = Depends(get_connection_manager),
    engine: FloorEngine = Depends(get_engine),
):
    """Streams every domain event; ``?org_id=`` narrows to one floor."""
    await manager.connect(websocket, org_id)

    try:
        if org_id:
            await manager.send_personal(
                {"type": "initial_state", "data": await floor_state(engine, org_id)},
                websocket,
            )

        while True:
            data = await websocket.receive_text()
            message = json.loads(data)

            await handle_client_message(message, websocket, manager, engine, org_id)

    except WebSocketDisconnect:
        manager.disconnect(websocket)
    except Exception:
        logger.exception("WebSocket error")
        manager.disconnect(websocket)


async def handle_client_message(
    message: dict,
    websocket: WebSocket,
    manager: ConnectionManager,
    engine: FloorEngine,
    org_id: Optional[str],
):
    """Handle incoming WebSocket messages from clients."""
    msg_type = message.get("type")

    if msg_type == "ping":
        await manager.send_personal({"type": "pong"}, websocket)

    elif msg_type == "request_state":
        target = message.get("org_id") or org_id
        if not target:
            await manager.send_personal(
                {"type": "error", "message": "org_id is required"}, websocket
            )
            return
        await manager.send_personal(
            {"type": "state_update", "data": await floor_state(engine, target)},
            websocket,
        )

    else:
        await manager.send_personal(
            {"type": "error", "message": f"Unknown message type: {msg_type}"}, websocket
        )
