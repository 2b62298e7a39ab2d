"""Pytest configuration and shared fixtures."""
import asyncio

import pytest
import pytest_asyncio

from relaychat.client.connection_manager import ConnectionManager
from relaychat.shared.errors import ABNORMAL_CLOSURE, NORMAL_CLOSURE, TransportClosed, TransportError

RECONNECT_DELAY_S = 0.05


class FakeTransport:
    """In-memory transport with the same interface as WebSocketTransport."""

    def __init__(self, fail_open: bool = False, auto_open: bool = True):
        self.fail_open = fail_open
        self.url = None
        self.sent = []
        self.close_calls = []
        self.is_open = False
        self.gate = asyncio.Event()
        if auto_open:
            self.gate.set()
        self._inbox = asyncio.Queue()

    async def open(self, url):
        self.url = url
        if self.fail_open:
            raise TransportError(f"could not open {url}: connection refused")
        await self.gate.wait()
        self.is_open = True

    async def recv(self):
        item = await self._inbox.get()
        if isinstance(item, TransportClosed):
            self.is_open = False
            raise item
        return item

    async def send(self, frame):
        if not self.is_open:
            raise TransportClosed(ABNORMAL_CLOSURE, "not open")
        self.sent.append(frame)

    async def close(self, code=NORMAL_CLOSURE, reason=""):
        self.close_calls.append((code, reason))
        self.is_open = False
        self._inbox.put_nowait(TransportClosed(code, reason))

    # Test helpers: simulate the relay
    def push(self, frame):
        self._inbox.put_nowait(frame)

    def drop(self, code=ABNORMAL_CLOSURE, reason="network down"):
        self._inbox.put_nowait(TransportClosed(code, reason))


class FakeTransportFactory:
    def __init__(self):
        self.created = []
        self.fail_open = False
        self.auto_open = True

    def __call__(self):
        transport = FakeTransport(fail_open=self.fail_open, auto_open=self.auto_open)
        self.created.append(transport)
        return transport

    @property
    def last(self):
        return self.created[-1]


async def settle(delay: float = 0.01):
    """Let queued frames and callbacks run."""
    await asyncio.sleep(delay)


@pytest.fixture
def transport_factory():
    return FakeTransportFactory()


@pytest_asyncio.fixture
async def manager(transport_factory):
    """A manager for 'alice' on a production origin, torn down after the test."""
    m = ConnectionManager(
        "alice",
        origin="https://chat.example.com",
        transport_factory=transport_factory,
        reconnect_delay_s=RECONNECT_DELAY_S,
    )
    yield m
    await m.aclose()


@pytest_asyncio.fixture
async def connected(manager):
    """The manager fixture, started and connected."""
    manager.start()
    await manager.state.wait_for(lambda s: s.is_connected, timeout=1.0)
    return manager
