"""
MODULE OVERVIEW:
This module defines the strictly typed data structures shared by the codec,
the session state and the connection manager, powered by Pydantic v2.

WHAT IS HAPPENING HERE:
`WireEnvelope` is the only shape that ever crosses the socket. `ChatEvent` and
`PresenceEvent` are what an inbound frame turns into after classification.
`ChatMessage` is what the rest of the application renders: it is frozen,
so once a message is in the log nobody can edit it.
"""
from datetime import datetime, timezone
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, StrictStr


def validate_identity(identity: str) -> str:
    """Identities are opaque display names; the only rule is that they are not blank."""
    if not isinstance(identity, str) or not identity.strip():
        raise ValueError("identity must be a non-empty string")
    return identity


class Connectivity(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


# WHAT IS HAPPENING HERE:
# The id is a local rendering key assigned by one client instance.
# It is not a sequence number the server knows anything about.
class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    author: str
    text: str
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# WHAT IS HAPPENING HERE:
# The minimal JSON contract exchanged with the relay, one object per text frame:
# {"username": "<identity>", "content": "<trimmed text>"}
class WireEnvelope(BaseModel):
    username: str
    content: str


class ChatEvent(BaseModel):
    username: str
    content: str


# A frame carrying only a username. The relay sends these when somebody joins
# or leaves, with the same shape for both.
class PresenceEvent(BaseModel):
    username: str


# WHAT IS HAPPENING HERE:
# The shape every inbound frame is validated against before classification.
# Strict types: a number is not a username and `true` is not content.
# Keys the relay may add later are ignored.
class InboundFrame(BaseModel):
    username: StrictStr = Field(min_length=1)
    content: StrictStr | None = None
