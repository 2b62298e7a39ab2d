"""Tests for the websockets transport adapter, including a round trip against a local relay."""
import json

import pytest
import pytest_asyncio
import websockets
from websockets.exceptions import ConnectionClosed
from websockets.frames import Close

from relaychat.client.connection_manager import ConnectionManager
from relaychat.client.transport import WebSocketTransport, closed_from
from relaychat.shared.config import settings
from relaychat.shared.errors import TransportClosed, TransportError
from relaychat.shared.models import Connectivity


class TestCloseCodeMapping:

    def test_received_close_frame_keeps_code(self):
        closed = closed_from(ConnectionClosed(Close(1001, "going away"), None))

        assert (closed.code, closed.reason) == (1001, "going away")
        assert not closed.intentional

    def test_normal_close_is_intentional(self):
        assert closed_from(ConnectionClosed(Close(1000, ""), None)).intentional

    def test_missing_close_frame_is_abnormal(self):
        assert closed_from(ConnectionClosed(None, None)).code == 1006


class TestWebSocketTransport:

    def test_not_open_before_open(self):
        assert WebSocketTransport().is_open is False

    @pytest.mark.asyncio
    async def test_invalid_url_raises_transport_error(self):
        with pytest.raises(TransportError):
            await WebSocketTransport(open_timeout_s=1.0).open("not-a-websocket-url")

    @pytest.mark.asyncio
    async def test_recv_before_open_reports_closed(self):
        with pytest.raises(TransportClosed):
            await WebSocketTransport().recv()


@pytest_asyncio.fixture
async def relay():
    """
    A minimal local relay: announces each joiner with a presence frame and
    broadcasts every chat frame to all connected clients, the sender included.
    """
    clients = set()

    async def handler(ws):
        clients.add(ws)
        try:
            await ws.send(json.dumps({"username": "relay-bot"}))
            async for raw in ws:
                for client in list(clients):
                    await client.send(raw)
        finally:
            clients.discard(ws)

    async with websockets.serve(handler, "127.0.0.1", 0) as server:
        port = server.sockets[0].getsockname()[1]
        yield f"http://127.0.0.1:{port}"


class TestAgainstLocalRelay:

    @pytest.mark.asyncio
    async def test_round_trip(self, relay, monkeypatch):
        monkeypatch.setattr(settings, "DEV_HOSTS", [])
        manager = ConnectionManager("alice", origin=relay, reconnect_delay_s=0.05)

        async with manager:
            await manager.state.wait_for(lambda s: s.is_connected, timeout=5.0)
            assert manager.send("hello")
            await manager.state.wait_for(lambda s: len(s.messages) == 2, timeout=5.0)

        assert [(m.author, m.text) for m in manager.messages] == [("alice", "hello"), ("alice", "hello")]
        assert manager.connectivity is Connectivity.DISCONNECTED
        assert not manager.reconnect_pending
        assert manager.state.stats["frames_received"] == 2

    @pytest.mark.asyncio
    async def test_relay_going_away_triggers_reconnect(self, monkeypatch):
        monkeypatch.setattr(settings, "DEV_HOSTS", [])
        connections = []

        async def handler(ws):
            connections.append(ws)
            if len(connections) == 1:
                await ws.close(code=1001, reason="restarting")
                return
            await ws.wait_closed()

        async with websockets.serve(handler, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            manager = ConnectionManager("alice", origin=f"http://127.0.0.1:{port}", reconnect_delay_s=0.05)
            try:
                manager.start()
                await manager.state.wait_for(
                    lambda s: s.is_connected and s.stats["reconnect_count"] == 1, timeout=5.0
                )
                assert manager.last_error is None
            finally:
                await manager.aclose()

        assert len(connections) == 2
