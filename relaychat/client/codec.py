"""
MODULE OVERVIEW:
The Message Codec.

WHAT IS HAPPENING HERE:
Outgoing text is trimmed and wrapped into a WireEnvelope carrying our identity.
Incoming frames are validated against InboundFrame and classified:
  - username + non-empty content  -> ChatEvent (goes into the message log)
  - username, content absent/empty -> PresenceEvent (join/leave signal)
  - anything else                  -> MalformedFrame
Unknown extra keys are ignored, the same way the relay's own parser ignores them.
"""
from pydantic import ValidationError

from relaychat.shared.errors import EmptyMessage, MalformedFrame
from relaychat.shared.models import ChatEvent, InboundFrame, PresenceEvent, WireEnvelope, validate_identity

class MessageCodec:
    def __init__(self, identity: str):
        self.identity = validate_identity(identity)

    def encode(self, text: str) -> WireEnvelope:
        content = text.strip()
        if not content:
            raise EmptyMessage("message is empty after trimming")
        return WireEnvelope(username=self.identity, content=content)

    def serialize(self, envelope: WireEnvelope) -> str:
        return envelope.model_dump_json()

    def decode(self, raw: str | bytes) -> ChatEvent | PresenceEvent:
        # Bytes frames are parsed as UTF-8 JSON; invalid UTF-8 fails validation too
        try:
            frame = InboundFrame.model_validate_json(raw)
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first["loc"]) or "frame"
            raise MalformedFrame(f"invalid frame at {location}: {first['msg']}") from e

        if not frame.content:
            return PresenceEvent(username=frame.username)
        return ChatEvent(username=frame.username, content=frame.content)
