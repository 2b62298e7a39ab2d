"""
MODULE OVERVIEW:
The connection state machine, with no I/O in it.

WHAT IS HAPPENING HERE:
Each transport lifecycle signal and each caller operation is a plain function
taking the current Phase (plus the signal payload) and returning a Transition:
the next Phase and the list of Effects the ConnectionManager must carry out.
Because nothing here touches a socket or a timer, every rule of the lifecycle
can be tested by calling these functions directly.

Errors are data (SetError), not a phase: a CONNECTED session can carry a stale
error and a DISCONNECTED one can carry the reason it dropped.
"""
from dataclasses import dataclass, field
from enum import Enum

from relaychat.shared.errors import NORMAL_CLOSURE
from relaychat.shared.models import ChatEvent, Connectivity, PresenceEvent, WireEnvelope

class Phase(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    # Local disconnect requested, transport close not yet confirmed
    CLOSING = "closing"

LIVE_PHASES = {Phase.CONNECTING, Phase.CONNECTED}

# ==========================
# EFFECTS
# ==========================
@dataclass(frozen=True)
class OpenTransport:
    url: str

@dataclass(frozen=True)
class CloseTransport:
    code: int = NORMAL_CLOSURE
    reason: str = "intentional disconnect"

@dataclass(frozen=True)
class WriteFrame:
    frame: str

@dataclass(frozen=True)
class AppendMessage:
    author: str
    text: str

@dataclass(frozen=True)
class SetConnectivity:
    connectivity: Connectivity

@dataclass(frozen=True)
class SetError:
    error: str

@dataclass(frozen=True)
class ClearError:
    pass

@dataclass(frozen=True)
class ScheduleReconnect:
    delay_s: float

@dataclass(frozen=True)
class CancelReconnect:
    pass

# Effects that change what observers of the SessionState can see
STATE_EFFECTS = (AppendMessage, SetConnectivity, SetError, ClearError)

@dataclass(frozen=True)
class Transition:
    phase: Phase
    effects: list = field(default_factory=list)

    @property
    def changes_state(self) -> bool:
        return any(isinstance(e, STATE_EFFECTS) for e in self.effects)

# ==========================
# CALLER OPERATIONS
# ==========================
def start(phase: Phase, url: str) -> Transition:
    """Idempotent: a session that is already connecting or connected is left alone."""
    if phase in LIVE_PHASES:
        return Transition(phase)
    return Transition(Phase.CONNECTING, [
        CancelReconnect(),
        SetConnectivity(Connectivity.CONNECTING),
        OpenTransport(url),
    ])

def send(phase: Phase, envelope: WireEnvelope, frame: str) -> Transition:
    """Write the frame and append our own copy right away, without waiting for an echo."""
    if phase is not Phase.CONNECTED:
        return Transition(phase)
    return Transition(phase, [
        WriteFrame(frame),
        AppendMessage(envelope.username, envelope.content),
    ])

def disconnect(phase: Phase) -> Transition:
    if phase in (Phase.DISCONNECTED, Phase.CLOSING):
        # Still kill a pending retry: a disconnected session may be waiting to reconnect
        return Transition(phase, [CancelReconnect()])
    return Transition(Phase.CLOSING, [
        CancelReconnect(),
        CloseTransport(),
        SetConnectivity(Connectivity.DISCONNECTED),
    ])

# ==========================
# TRANSPORT SIGNALS
# ==========================
def on_open(phase: Phase) -> Transition:
    if phase is not Phase.CONNECTING:
        return Transition(phase)
    return Transition(Phase.CONNECTED, [
        SetConnectivity(Connectivity.CONNECTED),
        ClearError(),
    ])

def on_frame(phase: Phase, event: ChatEvent | PresenceEvent) -> Transition:
    # Presence frames are recognised by the codec but carry no state change
    if isinstance(event, ChatEvent) and phase is Phase.CONNECTED:
        return Transition(phase, [AppendMessage(event.username, event.content)])
    return Transition(phase)

def on_error(phase: Phase, error: str) -> Transition:
    return Transition(phase, [SetError(error)])

def on_close(phase: Phase, code: int, reconnect_delay_s: float) -> Transition:
    if phase is Phase.CLOSING:
        return Transition(Phase.DISCONNECTED)
    if phase not in LIVE_PHASES:
        return Transition(phase)

    effects = [SetConnectivity(Connectivity.DISCONNECTED)]
    if code != NORMAL_CLOSURE:
        effects.append(ScheduleReconnect(reconnect_delay_s))
    return Transition(Phase.DISCONNECTED, effects)
