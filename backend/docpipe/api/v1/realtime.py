"""
Real-time job updates over WebSocket.

  WS /ws
    observer → server   {"type": "subscribe",   "jobId": "<id>"}
                        {"type": "unsubscribe", "jobId": "<id>"}
    server → observer   full job snapshot JSON after every job save

Malformed messages and binary frames are ignored. Disconnecting drops
every subscription held by the socket.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket

from docpipe.services.notifications import WebSocketObserver

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])


@router.websocket("/ws")
async def job_updates(websocket: WebSocket) -> None:
    registry = websocket.app.state.services.registry
    await websocket.accept()
    observer = WebSocketObserver(websocket)
    logger.debug("WS connected | client=%s", websocket.client)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.debug("WS disconnected | client=%s", websocket.client)
                break
            raw = message.get("text")
            if raw is None:
                logger.debug("WS binary frame ignored | client=%s", websocket.client)
                continue
            registry.handle_message(observer, raw)
    finally:
        registry.on_disconnect(observer)
