"""
Realtime transfer notifications over WebSocket.

The registry maps each user to the set of their live connection ids and
each connection id to its socket. Emission is best-effort: a failed send
purges that connection and is otherwise ignored, and a user with no live
connections simply gets nothing (clients fall back to polling).
"""
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket

from app.services import ledger
from app.services.token_service import claimed_user_id, verify_access_token

logger = logging.getLogger(__name__)


class SocketAuthError(Exception):
    """Raised when a socket presents no token, a bad token, or an inactive account."""


@dataclass(frozen=True)
class ConnectionHandle:
    connection_id: str
    user_id: int


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ConnectionRegistry:
    def __init__(self) -> None:
        self._user_connections: Dict[int, Set[str]] = {}
        self._sockets: Dict[str, Any] = {}
        self._owners: Dict[str, int] = {}
        # Plain lock: held only around dict mutation, never across a send
        self._lock = threading.Lock()

    def add(self, user_id: int, websocket: Any) -> ConnectionHandle:
        connection_id = uuid.uuid4().hex
        with self._lock:
            self._user_connections.setdefault(user_id, set()).add(connection_id)
            self._sockets[connection_id] = websocket
            self._owners[connection_id] = user_id
        logger.info("Socket %s registered for user %s", connection_id, user_id)
        return ConnectionHandle(connection_id=connection_id, user_id=user_id)

    async def connect(self, websocket: WebSocket, user_id: int) -> ConnectionHandle:
        await websocket.accept()
        return self.add(user_id, websocket)

    def remove(self, handle: ConnectionHandle) -> None:
        self._discard(handle.connection_id)

    def _discard(self, connection_id: str) -> None:
        with self._lock:
            self._sockets.pop(connection_id, None)
            user_id = self._owners.pop(connection_id, None)
            if user_id is None:
                return
            ids = self._user_connections.get(user_id)
            if ids is not None:
                ids.discard(connection_id)
                if not ids:
                    del self._user_connections[user_id]
        logger.info("Socket %s removed for user %s", connection_id, user_id)

    def connection_ids(self, user_id: int) -> Set[str]:
        with self._lock:
            return set(self._user_connections.get(user_id, ()))

    def is_user_connected(self, user_id: int) -> bool:
        with self._lock:
            return bool(self._user_connections.get(user_id))

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            per_user = {str(uid): len(ids) for uid, ids in self._user_connections.items()}
        return {
            "connected_users": len(per_user),
            "total_connections": sum(per_user.values()),
            "user_connections": per_user,
        }

    async def emit_to_user(self, user_id: int, payload: Dict[str, Any]) -> int:
        """Send ``payload`` to every live connection of ``user_id``; returns deliveries."""
        with self._lock:
            targets = [
                (cid, self._sockets[cid])
                for cid in self._user_connections.get(user_id, ())
                if cid in self._sockets
            ]
        if not targets:
            logger.debug("No live sockets for user %s; %s not delivered", user_id, payload.get("type"))
            return 0

        delivered = 0
        dead: List[str] = []
        for cid, ws in targets:
            try:
                await ws.send_json(payload)
                delivered += 1
            except Exception as e:
                logger.info("Send to socket %s failed (%s); purging", cid, e)
                dead.append(cid)
        for cid in dead:
            self._discard(cid)
        return delivered

    async def notify_transfer_pending(self, user_id: int, transaction: Dict[str, Any]) -> int:
        amount = transaction.get("amount", 0)
        payload = {
            "type": "transfer_pending",
            "transaction": transaction,
            "message": f"Your external transfer of ${amount:,.2f} is pending admin approval",
            "timestamp": _now_iso(),
        }
        return await self._safe_emit(user_id, payload)

    async def notify_transfer_resolved(
        self,
        user_id: int,
        transaction: Dict[str, Any],
        status: str,
        reason: Optional[str] = None,
    ) -> int:
        amount = transaction.get("amount", 0)
        if status == "approved":
            message = f"Your transfer of ${amount:,.2f} has been approved and processed!"
        else:
            message = f"Your transfer of ${amount:,.2f} was rejected"
            if reason:
                message = f"{message}: {reason}"
        payload = {
            "type": "transfer_update",
            "status": status,
            "transaction": transaction,
            "message": message,
            "reason": reason,
            "timestamp": _now_iso(),
        }
        return await self._safe_emit(user_id, payload)

    async def _safe_emit(self, user_id: int, payload: Dict[str, Any]) -> int:
        try:
            return await self.emit_to_user(user_id, payload)
        except Exception:
            logger.exception("Notification %s for user %s dropped", payload.get("type"), user_id)
            return 0

    async def close_all(self, code: int = 1001) -> None:
        with self._lock:
            sockets = list(self._sockets.values())
            self._sockets.clear()
            self._owners.clear()
            self._user_connections.clear()
        for ws in sockets:
            try:
                await ws.close(code=code)
            except Exception:
                logger.debug("Socket already closed during shutdown")


async def authenticate_socket(db, token: Optional[str]):
    if not token:
        raise SocketAuthError("Authentication token required")
    user_id = claimed_user_id(verify_access_token(token))
    if user_id is None:
        raise SocketAuthError("Invalid or expired token")
    user = await ledger.get_user(db, user_id)
    if user is None or not user.is_active:
        raise SocketAuthError("Account not found or inactive")
    return user


async def register_connection(db, registry: ConnectionRegistry, token: Optional[str], websocket: WebSocket) -> ConnectionHandle:
    """Authenticate, accept and register a socket. Raises SocketAuthError before accepting."""
    user = await authenticate_socket(db, token)
    return await registry.connect(websocket, user.id)
