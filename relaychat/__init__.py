"""relaychat: connection-management core of a real-time chat client."""
from relaychat.client.connection_manager import ConnectionManager, replace_identity
from relaychat.client.session_state import SessionState
from relaychat.shared.endpoint import resolve_endpoint
from relaychat.shared.errors import EmptyMessage, MalformedFrame, TransportClosed, TransportError
from relaychat.shared.models import ChatMessage, Connectivity

__version__ = "1.0.0"

__all__ = [
    "ChatMessage",
    "ConnectionManager",
    "Connectivity",
    "EmptyMessage",
    "MalformedFrame",
    "SessionState",
    "TransportClosed",
    "TransportError",
    "replace_identity",
    "resolve_endpoint",
]
