"""
MODULE OVERVIEW:
The Connection Manager: owner of exactly one physical transport session at a time.

WHAT IS HAPPENING HERE:
The lifecycle rules live in `client.machine` as pure transition functions. This
class feeds them the signals (open, frame, error, close, and the caller's
start/send/disconnect) and carries out the effects they return: open or close
the transport, queue a frame, mutate the SessionState, arm or cancel the
reconnect timer.

Every transport we open gets a generation number. A signal coming from a
transport that is no longer the current one is ignored, so a superseded session
can neither touch the state nor arm a second reconnect timer.

`start`, `send` and `disconnect` are synchronous and return immediately; call
them from code running on the event loop and watch `state` for the outcome.
"""
import asyncio
from typing import Callable

from loguru import logger

from relaychat.client import machine
from relaychat.client.codec import MessageCodec
from relaychat.client.machine import Phase, Transition
from relaychat.client.session_state import SessionState
from relaychat.client.transport import Transport, WebSocketTransport
from relaychat.shared.client_utils import log_session, utc_now_iso
from relaychat.shared.config import settings
from relaychat.shared.endpoint import resolve_endpoint
from relaychat.shared.errors import (
    ABNORMAL_CLOSURE,
    INTERNAL_ERROR,
    NORMAL_CLOSURE,
    EmptyMessage,
    MalformedFrame,
    TransportClosed,
    TransportError,
)
from relaychat.shared.models import ChatMessage, Connectivity, PresenceEvent, validate_identity

class ConnectionManager:
    def __init__(
        self,
        identity: str,
        origin: str | None = None,
        transport_factory: Callable[[], Transport] = WebSocketTransport,
        reconnect_delay_s: float | None = None,
    ):
        self.identity = validate_identity(identity)
        self.origin = origin
        self.transport_factory = transport_factory
        self.reconnect_delay_s = settings.RECONNECT_DELAY_S if reconnect_delay_s is None else reconnect_delay_s

        self.codec = MessageCodec(self.identity)
        self.state = SessionState(self.identity)
        self.phase = Phase.DISCONNECTED
        self.url: str | None = None

        self._generation = 0
        self._transport: Transport | None = None
        self._outbox: asyncio.Queue[str] | None = None
        self._session_task: asyncio.Task | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None

        # Every background task we spawn, so aclose() can wait for all of them
        self._tasks: set[asyncio.Task] = set()

    async def __aenter__(self) -> "ConnectionManager":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ==========================
    # READ ACCESS
    # ==========================
    @property
    def connectivity(self) -> Connectivity:
        return self.state.connectivity

    @property
    def last_error(self) -> str | None:
        return self.state.last_error

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return self.state.messages

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    # ==========================
    # PUBLIC OPERATIONS
    # ==========================
    def start(self) -> None:
        url = resolve_endpoint(self.identity, self.origin)
        self._apply(machine.start(self.phase, url))

    def connect(self) -> None:
        self.start()

    def send(self, text: str) -> bool:
        if self.phase is not Phase.CONNECTED:
            log_session("send", self.identity, level="DEBUG", result="rejected", reason="not_connected")
            return False
        try:
            envelope = self.codec.encode(text)
        except EmptyMessage:
            log_session("send", self.identity, level="DEBUG", result="rejected", reason="empty")
            return False

        # Counted before the transition publishes, so observers see the new total
        self.state.stats["messages_sent"] += 1
        self._apply(machine.send(self.phase, envelope, self.codec.serialize(envelope)))
        return True

    def disconnect(self) -> None:
        self._apply(machine.disconnect(self.phase))

    async def flush(self, timeout: float | None = None) -> None:
        """
        Wait until every frame queued by `send` has been handed to the transport,
        or discarded because its session ended first.
        """
        if self._outbox is not None:
            await asyncio.wait_for(self._outbox.join(), timeout=timeout)

    async def aclose(self) -> None:
        """Disconnect and wait until every task this manager spawned has finished."""
        self.disconnect()
        while True:
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                break
            await asyncio.gather(*pending, return_exceptions=True)

    # ==========================
    # STATE MACHINE PLUMBING
    # ==========================
    def _dispatch(self, generation: int, transition_fn, *args) -> None:
        if generation != self._generation:
            logger.debug(f"identity={self.identity} event=stale_signal signal={transition_fn.__name__} generation={generation}")
            return
        self._apply(transition_fn(self.phase, *args))

    def _apply(self, transition: Transition) -> None:
        previous = self.phase
        self.phase = transition.phase
        for effect in transition.effects:
            self._execute(effect)

        if self.phase is not previous:
            log_session("phase", self.identity, level="DEBUG", before=previous.value, after=self.phase.value)
        if transition.changes_state:
            self.state.publish()

    def _execute(self, effect) -> None:
        if isinstance(effect, machine.OpenTransport):
            self._open_transport(effect.url)
        elif isinstance(effect, machine.CloseTransport):
            self._close_transport(effect.code, effect.reason)
        elif isinstance(effect, machine.WriteFrame):
            self._outbox.put_nowait(effect.frame)
        elif isinstance(effect, machine.AppendMessage):
            self.state.append_message(effect.author, effect.text)
        elif isinstance(effect, machine.SetConnectivity):
            self.state.set_connectivity(effect.connectivity)
            if effect.connectivity is Connectivity.CONNECTED:
                self.state.stats["connected_at"] = utc_now_iso()
        elif isinstance(effect, machine.SetError):
            self.state.set_error(effect.error)
        elif isinstance(effect, machine.ClearError):
            self.state.clear_error()
        elif isinstance(effect, machine.ScheduleReconnect):
            self._schedule_reconnect(effect.delay_s)
        elif isinstance(effect, machine.CancelReconnect):
            self._cancel_reconnect()
        else:
            raise TypeError(f"Unknown effect: {effect!r}")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ==========================
    # TRANSPORT
    # ==========================
    def _open_transport(self, url: str) -> None:
        self._generation += 1
        self.url = url
        self._transport = self.transport_factory()
        self._outbox = asyncio.Queue()
        generation = self._generation
        self._session_task = self._spawn(
            self._run_session(generation, self._transport, self._outbox, url)
        )
        self._session_task.add_done_callback(lambda task: self._session_done(generation, task))
        log_session("connecting", self.identity, url=url, generation=self._generation)

    def _close_transport(self, code: int, reason: str) -> None:
        transport, session_task = self._transport, self._session_task
        if transport is None:
            return
        if transport.is_open:
            self._spawn(self._send_close(transport, code, reason))
        elif session_task is not None:
            # Still opening: abandon the handshake
            session_task.cancel()
        log_session("disconnect", self.identity, code=code)

    async def _send_close(self, transport: Transport, code: int, reason: str) -> None:
        try:
            await transport.close(code, reason)
        except TransportError as e:
            logger.warning(f"identity={self.identity} event=close_failed reason='{e}'")

    def _session_done(self, generation: int, task: asyncio.Task) -> None:
        # A cancelled session never saw a close frame. This also covers a task
        # cancelled before its first step, where no handler inside it can run.
        if task.cancelled():
            self._dispatch(generation, machine.on_close, NORMAL_CLOSURE, self.reconnect_delay_s)

    async def _run_session(self, generation: int, transport: Transport, outbox: asyncio.Queue, url: str) -> None:
        try:
            await transport.open(url)
        except TransportError as e:
            logger.warning(f"identity={self.identity} event=error reason='{e}'")
            self._dispatch(generation, machine.on_error, str(e))
            self._dispatch(generation, machine.on_close, ABNORMAL_CLOSURE, self.reconnect_delay_s)
            return

        log_session("open", self.identity, url=url, generation=generation)
        self._dispatch(generation, machine.on_open)
        writer = self._spawn(self._drain_outbox(generation, transport, outbox))

        try:
            while True:
                frame = await transport.recv()
                self._receive(generation, frame)
        except TransportClosed as e:
            log_session("close", self.identity, code=e.code, reason=f"'{e.reason}'", generation=generation)
            if e.code == ABNORMAL_CLOSURE and self.phase in machine.LIVE_PHASES:
                self._dispatch(generation, machine.on_error, f"connection lost ({e})")
            self._dispatch(generation, machine.on_close, e.code, self.reconnect_delay_s)
        finally:
            writer.cancel()
            self._discard_outbox(outbox)

    async def _drain_outbox(self, generation: int, transport: Transport, outbox: asyncio.Queue) -> None:
        while True:
            frame = await outbox.get()
            try:
                await transport.send(frame)
            except TransportError as e:
                logger.warning(f"identity={self.identity} event=send_failed reason='{e}'")
                self._dispatch(generation, machine.on_error, f"send failed ({e})")
                # The session can no longer write: close it so the reconnect path runs
                self._spawn(self._send_close(transport, INTERNAL_ERROR, "send failed"))
                return
            finally:
                outbox.task_done()

    def _discard_outbox(self, outbox: asyncio.Queue) -> None:
        dropped = 0
        while not outbox.empty():
            outbox.get_nowait()
            outbox.task_done()
            dropped += 1
        if dropped:
            logger.warning(f"identity={self.identity} event=frames_discarded count={dropped}")

    def _receive(self, generation: int, raw: str | bytes) -> None:
        if generation != self._generation:
            return
        self.state.stats["frames_received"] += 1
        self.state.stats["last_frame_at"] = utc_now_iso()

        try:
            event = self.codec.decode(raw)
        except MalformedFrame as e:
            self.state.stats["frames_dropped"] += 1
            logger.warning(f"identity={self.identity} event=dropped reason='{e}'")
            return

        if isinstance(event, PresenceEvent):
            logger.debug(f"identity={self.identity} event=presence username={event.username}")
        self._dispatch(generation, machine.on_frame, event)

    # ==========================
    # RECONNECTION
    # ==========================
    def _schedule_reconnect(self, delay_s: float) -> None:
        self._cancel_reconnect()
        self._reconnect_handle = asyncio.get_running_loop().call_later(delay_s, self._reconnect)
        log_session("reconnect_scheduled", self.identity, delay_s=delay_s)

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
            log_session("reconnect_cancelled", self.identity, level="DEBUG")

    def _reconnect(self) -> None:
        self._reconnect_handle = None
        self.state.stats["reconnect_count"] += 1
        log_session("reconnect", self.identity, attempt=self.state.stats["reconnect_count"])
        self.start()


async def replace_identity(manager: ConnectionManager, identity: str) -> ConnectionManager:
    """
    Identity changes never mutate a live manager: the old one is fully torn down
    (transport closed, reconnect timer cancelled, tasks awaited) and a fresh one
    with the same configuration is returned, not yet started.
    """
    await manager.aclose()
    return ConnectionManager(
        identity,
        origin=manager.origin,
        transport_factory=manager.transport_factory,
        reconnect_delay_s=manager.reconnect_delay_s,
    )
