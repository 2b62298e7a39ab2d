"""
MODULE OVERVIEW:
The WebSocket transport adapter.

WHAT IS HAPPENING HERE:
We use the `websockets` library but hide it behind four calls: open, recv, send
and close. Library exceptions are translated into our own TransportError /
TransportClosed so the ConnectionManager never has to know which library is
underneath, and tests can swap in an in-memory transport with the same shape.
A closure without a close frame from the peer (network drop) reports 1006.
"""
import asyncio
from typing import Protocol

import websockets
from websockets.exceptions import ConnectionClosed

from relaychat.shared.config import settings
from relaychat.shared.errors import ABNORMAL_CLOSURE, NORMAL_CLOSURE, TransportClosed, TransportError

class Transport(Protocol):
    @property
    def is_open(self) -> bool: ...

    async def open(self, url: str) -> None: ...

    async def recv(self) -> str | bytes: ...

    async def send(self, frame: str) -> None: ...

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None: ...


def closed_from(exc: ConnectionClosed) -> TransportClosed:
    if exc.rcvd is None:
        return TransportClosed(ABNORMAL_CLOSURE, "no close frame received")
    return TransportClosed(exc.rcvd.code, exc.rcvd.reason)


class WebSocketTransport:
    def __init__(self, open_timeout_s: float | None = None):
        self.open_timeout_s = settings.OPEN_TIMEOUT_S if open_timeout_s is None else open_timeout_s
        self.ws = None

    @property
    def is_open(self) -> bool:
        return self.ws is not None

    async def open(self, url: str) -> None:
        try:
            self.ws = await websockets.connect(url, open_timeout=self.open_timeout_s)
        except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as e:
            raise TransportError(f"could not open {url}: {e}") from e

    async def recv(self) -> str | bytes:
        if self.ws is None:
            raise TransportClosed(ABNORMAL_CLOSURE, "transport was never opened")
        try:
            return await self.ws.recv()
        except ConnectionClosed as e:
            raise closed_from(e) from e

    async def send(self, frame: str) -> None:
        if self.ws is None:
            raise TransportClosed(ABNORMAL_CLOSURE, "transport was never opened")
        try:
            await self.ws.send(frame)
        except ConnectionClosed as e:
            raise closed_from(e) from e

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        if self.ws is not None:
            await self.ws.close(code=code, reason=reason)
