"""
Tests for the realtime connection registry.
"""
from unittest.mock import AsyncMock

import pytest

from app.services.notifications import (
    ConnectionRegistry,
    SocketAuthError,
    authenticate_socket,
)
from app.services.token_service import create_access_token, create_token_for_user
from tests.conftest import NOON


class TestRegistryLifecycle:

    def test_add_and_remove(self, registry):
        first = registry.add(7, AsyncMock())
        second = registry.add(7, AsyncMock())

        assert registry.is_user_connected(7)
        assert registry.connection_ids(7) == {first.connection_id, second.connection_id}
        assert registry.snapshot() == {"connected_users": 1, "total_connections": 2, "user_connections": {"7": 2}}

        registry.remove(first)
        registry.remove(second)

        assert not registry.is_user_connected(7)
        assert registry.snapshot()["connected_users"] == 0
        assert "7" not in registry.snapshot()["user_connections"]

    def test_remove_is_idempotent(self, registry):
        handle = registry.add(1, AsyncMock())

        registry.remove(handle)
        registry.remove(handle)

        assert registry.snapshot()["total_connections"] == 0


class TestEmission:

    @pytest.mark.asyncio
    async def test_fan_out_to_every_connection_of_user(self, registry):
        mine = [AsyncMock(), AsyncMock()]
        other = AsyncMock()
        for ws in mine:
            registry.add(1, ws)
        registry.add(2, other)

        delivered = await registry.notify_transfer_pending(1, {"id": 5, "amount": 1500.0})

        assert delivered == 2
        for ws in mine:
            payload = ws.send_json.await_args.args[0]
            assert payload["type"] == "transfer_pending"
            assert "$1,500.00" in payload["message"]
        other.send_json.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_connections_is_not_an_error(self, registry):
        delivered = await registry.notify_transfer_resolved(42, {"id": 1, "amount": 10.0}, "approved")

        assert delivered == 0

    @pytest.mark.asyncio
    async def test_dead_socket_is_purged(self, registry):
        dead = AsyncMock()
        dead.send_json.side_effect = RuntimeError("socket closed")
        alive = AsyncMock()
        registry.add(3, dead)
        registry.add(3, alive)

        delivered = await registry.notify_transfer_resolved(3, {"id": 1, "amount": 10.0}, "approved")

        assert delivered == 1
        assert registry.snapshot()["user_connections"] == {"3": 1}

    @pytest.mark.asyncio
    async def test_approved_message(self, registry):
        ws = AsyncMock()
        registry.add(1, ws)

        await registry.notify_transfer_resolved(1, {"id": 1, "amount": 2500.0}, "approved")

        payload = ws.send_json.await_args.args[0]
        assert payload["message"] == "Your transfer of $2,500.00 has been approved and processed!"

    @pytest.mark.asyncio
    async def test_close_all_clears_registry(self, registry):
        ws = AsyncMock()
        registry.add(1, ws)

        await registry.close_all()

        ws.close.assert_awaited_once()
        assert registry.snapshot()["total_connections"] == 0

    @pytest.mark.asyncio
    async def test_polling_still_sees_transfer_without_socket(self, db, service, established_user):
        """Nobody is connected: submission succeeds and the poll returns it."""
        decision = await service.submit_transfer(
            db,
            established_user.id,
            {"amount": "300", "recipientInfo": "987654321", "transferType": "external_bank", "bankName": "Citibank"},
            now=NOON,
        )

        updates = await service.transfer_updates(db, established_user.id)

        assert [t.id for t in updates][0] == decision.transaction.id


class TestSocketAuthentication:

    @pytest.mark.asyncio
    async def test_missing_token(self, db):
        with pytest.raises(SocketAuthError):
            await authenticate_socket(db, None)

    @pytest.mark.asyncio
    async def test_garbage_token(self, db):
        with pytest.raises(SocketAuthError):
            await authenticate_socket(db, "not-a-jwt")

    @pytest.mark.asyncio
    async def test_expired_token(self, db, make_user):
        user = make_user()
        token = create_access_token({"user_id": user.id, "role": "user"}, expires_in_seconds=-10)

        with pytest.raises(SocketAuthError):
            await authenticate_socket(db, token)

    @pytest.mark.asyncio
    async def test_inactive_user(self, db, make_user):
        user = make_user(is_active=False)

        with pytest.raises(SocketAuthError):
            await authenticate_socket(db, create_token_for_user(user))

    @pytest.mark.asyncio
    async def test_valid_token(self, db, make_user):
        user = make_user()

        authed = await authenticate_socket(db, create_token_for_user(user))

        assert authed.id == user.id

    @pytest.mark.asyncio
    async def test_non_numeric_user_id(self, db):
        token = create_access_token({"user_id": "abc", "role": "user"})

        with pytest.raises(SocketAuthError):
            await authenticate_socket(db, token)
