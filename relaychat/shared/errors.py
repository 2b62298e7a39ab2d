"""
Error taxonomy of the connection core.

None of these are fatal to a session: EmptyMessage becomes a `False` from
`send`, MalformedFrame drops one frame, TransportError lands in `last_error`
and TransportClosed drives the reconnect policy. A failed write closes the
session with INTERNAL_ERROR, which the reconnect policy treats as abnormal.
"""

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006
INTERNAL_ERROR = 1011


class EmptyMessage(ValueError):
    """Raised when outgoing text is empty after trimming."""


class MalformedFrame(ValueError):
    """Raised when an inbound frame is not a well-formed envelope."""


class TransportError(ConnectionError):
    """Raised when the underlying transport reports a failure."""


class TransportClosed(TransportError):
    def __init__(self, code: int = ABNORMAL_CLOSURE, reason: str = ""):
        self.code = code
        self.reason = reason
        super().__init__(f"closed code={code} reason='{reason}'")

    @property
    def intentional(self) -> bool:
        return self.code == NORMAL_CLOSURE
