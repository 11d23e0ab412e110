"""
Transfer updates over WebSocket.

Clients connect to ``/ws/transfers`` with a bearer token (``?token=`` or an
Authorization header). Unauthenticated sockets are refused before accept.
Once connected a client may send ``ping`` or ``request_transfer_updates``;
a socket that stays silent past the heartbeat timeout is closed and reaped.
"""
import asyncio
import json
import logging
import os
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from app.database import get_db
from app.services.notifications import SocketAuthError, register_connection
from app.services.sanitizer import serialize_transaction

logger = logging.getLogger(__name__)

WS_HEARTBEAT_TIMEOUT_SECONDS = float(os.getenv("WS_HEARTBEAT_TIMEOUT_SECONDS", "60"))
RECENT_UPDATES_LIMIT = 10

router = APIRouter(tags=["realtime"])


def _socket_token(ws: WebSocket):
    token = ws.query_params.get("token")
    if token:
        return token
    auth = ws.headers.get("authorization")
    if auth and auth.lower().startswith("bearer "):
        return auth.split(" ", 1)[1].strip()
    return None


def _command(message: str) -> str:
    """Accepts either a bare command string or ``{"type": "<command>"}``."""
    text = message.strip()
    if text.startswith("{"):
        try:
            data = json.loads(text)
        except ValueError:
            return ""
        if isinstance(data, dict):
            return str(data.get("type", "")).strip().lower()
        return ""
    return text.lower()


def _ts() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.websocket("/ws/transfers")
async def ws_transfers(ws: WebSocket, db=Depends(get_db)):
    registry = getattr(ws.app.state, "connection_registry", None)
    service = getattr(ws.app.state, "transfer_service", None)
    if registry is None or service is None or db is None:
        await ws.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    try:
        handle = await register_connection(db, registry, _socket_token(ws), ws)
    except SocketAuthError as e:
        logger.info("Socket refused: %s", e)
        await ws.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    # Release the connection checked out for authentication
    await db.rollback()

    try:
        await ws.send_json({
            "type": "connected",
            "userId": handle.user_id,
            "connectionId": handle.connection_id,
            "heartbeatTimeout": WS_HEARTBEAT_TIMEOUT_SECONDS,
            "timestamp": _ts(),
        })
        while True:
            try:
                message = await asyncio.wait_for(ws.receive_text(), timeout=WS_HEARTBEAT_TIMEOUT_SECONDS)
            except asyncio.TimeoutError:
                logger.info("Socket %s missed heartbeat; closing", handle.connection_id)
                await ws.close(code=status.WS_1001_GOING_AWAY)
                break

            command = _command(message)
            if command == "ping":
                await ws.send_json({"type": "pong", "timestamp": _ts()})
            elif command == "request_transfer_updates":
                transfers = await service.transfer_updates(db, handle.user_id, limit=RECENT_UPDATES_LIMIT)
                await db.rollback()
                await ws.send_json({
                    "type": "transfer_updates",
                    "updates": [serialize_transaction(t) for t in transfers],
                    "count": len(transfers),
                    "timestamp": _ts(),
                })
            else:
                await ws.send_json({"type": "error", "message": "Unknown command"})
    except WebSocketDisconnect:
        logger.debug("Socket %s disconnected", handle.connection_id)
    finally:
        registry.remove(handle)
