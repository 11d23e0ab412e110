"""
Tests for the transfer WebSocket.
"""
import pytest
from starlette.websockets import WebSocketDisconnect

from app.api import ws as ws_module
from tests.conftest import auth_headers
from app.services.token_service import create_access_token, create_token_for_user


class TestTransferSocket:

    def test_refused_without_token(self, client):
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/ws/transfers"):
                pass

        assert exc.value.code == 1008

    def test_refused_with_bad_token(self, client):
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/ws/transfers?token=nope"):
                pass

        assert exc.value.code == 1008

    def test_refused_with_non_numeric_user_id(self, client):
        token = create_access_token({"user_id": "abc", "role": "user"})

        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect(f"/ws/transfers?token={token}"):
                pass

        assert exc.value.code == 1008

    def test_connect_ping_and_disconnect(self, client, established_user):
        token = create_token_for_user(established_user)
        registry = client.app.state.connection_registry

        with client.websocket_connect(f"/ws/transfers?token={token}") as socket:
            hello = socket.receive_json()
            assert hello["type"] == "connected"
            assert hello["userId"] == established_user.id
            assert registry.is_user_connected(established_user.id)

            socket.send_text("ping")
            assert socket.receive_json()["type"] == "pong"

            socket.send_text('{"type": "bogus"}')
            assert socket.receive_json()["type"] == "error"

    def test_header_token_accepted(self, client, established_user):
        with client.websocket_connect("/ws/transfers", headers=auth_headers(established_user)) as socket:
            assert socket.receive_json()["type"] == "connected"

    def test_pending_and_resolution_events(self, client, established_user, make_user, sample_transfer):
        admin = make_user(role="admin")
        token = create_token_for_user(established_user)

        with client.websocket_connect(f"/ws/transfers?token={token}") as socket:
            socket.receive_json()

            created = client.post("/api/transfers", json=sample_transfer, headers=auth_headers(established_user))
            assert created.status_code == 201
            pending = socket.receive_json()
            assert pending["type"] == "transfer_pending"
            transfer_id = pending["transaction"]["id"]

            approved = client.post(f"/api/admin/transfers/{transfer_id}/approve", headers=auth_headers(admin))
            assert approved.status_code == 200
            update = socket.receive_json()
            assert update["type"] == "transfer_update"
            assert update["status"] == "approved"
            assert update["transaction"]["status"] == "PROCESSING"

            socket.send_text("request_transfer_updates")
            listing = socket.receive_json()
            assert listing["type"] == "transfer_updates"
            assert listing["updates"][0]["id"] == transfer_id

    def test_silent_socket_is_closed(self, client, established_user, monkeypatch):
        monkeypatch.setattr(ws_module, "WS_HEARTBEAT_TIMEOUT_SECONDS", 0.2)
        token = create_token_for_user(established_user)

        with client.websocket_connect(f"/ws/transfers?token={token}") as socket:
            socket.receive_json()
            with pytest.raises(WebSocketDisconnect) as exc:
                socket.receive_json()

        assert exc.value.code == 1001
