"""
MODULE OVERVIEW:
The observable Session State of one client instance.

WHAT IS HAPPENING HERE:
This is the record the rest of the application looks at: connectivity, the last
error, the ordered message log and the local id counter. Only the
ConnectionManager mutates it. Mutations do not notify on their own: the manager
applies every mutation of one state machine transition and then calls
`publish()`, so observers only ever see whole transitions.
Everything runs on the event loop thread, so no locking is needed.
"""
import asyncio
from typing import Callable

from loguru import logger

from relaychat.shared.client_utils import make_session_stats
from relaychat.shared.models import ChatMessage, Connectivity, validate_identity

Observer = Callable[["SessionState"], None]

class SessionState:
    def __init__(self, identity: str):
        self._identity = validate_identity(identity)
        self._connectivity = Connectivity.DISCONNECTED
        self._last_error: str | None = None
        self._messages: list[ChatMessage] = []
        self._next_id = 1
        self._observers: list[Observer] = []
        self.stats = make_session_stats()

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def connectivity(self) -> Connectivity:
        return self._connectivity

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    @property
    def is_connected(self) -> bool:
        return self._connectivity is Connectivity.CONNECTED

    # ==========================
    # MUTATIONS (ConnectionManager only)
    # ==========================
    def append_message(self, author: str, text: str) -> ChatMessage:
        message = ChatMessage(id=self._next_id, author=author, text=text)
        self._next_id += 1
        self._messages.append(message)
        return message

    def set_connectivity(self, connectivity: Connectivity) -> None:
        self._connectivity = connectivity

    def set_error(self, error: str) -> None:
        self._last_error = error

    def clear_error(self) -> None:
        self._last_error = None

    # ==========================
    # OBSERVATION
    # ==========================
    def subscribe(self, observer: Observer) -> Callable[[], None]:
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def publish(self) -> None:
        for observer in list(self._observers):
            try:
                observer(self)
            except Exception as e:
                logger.error(f"Error in session observer during publish: {e}")

    async def wait_for(self, predicate: Callable[["SessionState"], bool], timeout: float | None = None) -> None:
        """
        Suspend until `predicate(state)` holds after some published transition.
        Raises asyncio.TimeoutError if it does not happen within `timeout` seconds.
        """
        if predicate(self):
            return

        reached = asyncio.Event()

        def check(state: "SessionState") -> None:
            if predicate(state):
                reached.set()

        unsubscribe = self.subscribe(check)
        try:
            await asyncio.wait_for(reached.wait(), timeout=timeout)
        finally:
            unsubscribe()
