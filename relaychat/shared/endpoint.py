"""
MODULE OVERVIEW:
The Endpoint Resolver.

WHAT IS HAPPENING HERE:
We turn an identity into the WebSocket URL of the relay, using the configured
origin as the "page" we run from:
  1. https/wss origins get `wss`, everything else gets `ws`.
  2. Local development hosts dial the fixed cluster gateway instead.
  3. Any other host is used as-is.
  4. The identity is percent-encoded into the last path segment: /ws/<identity>
This is an operational shortcut for local clusters, not service discovery.
"""
from urllib.parse import quote, urlsplit

from relaychat.shared.config import settings

SECURE_SCHEMES = {"https", "wss"}

# Characters encodeURIComponent leaves alone on top of quote()'s always-safe set
_COMPONENT_SAFE = "!~*'()"


def encode_identity(identity: str) -> str:
    return quote(identity, safe=_COMPONENT_SAFE)


def resolve_endpoint(
    identity: str,
    origin: str | None = None,
    dev_hosts: list[str] | None = None,
    dev_gateway_host: str | None = None,
) -> str:
    parts = urlsplit(origin or settings.ORIGIN)
    scheme = "wss" if parts.scheme.lower() in SECURE_SCHEMES else "ws"

    hostname = parts.hostname or "localhost"
    dev_hosts = settings.DEV_HOSTS if dev_hosts is None else dev_hosts

    if hostname in dev_hosts:
        host = dev_gateway_host or settings.DEV_GATEWAY_HOST
    else:
        host = hostname
        if ":" in host:
            host = f"[{host}]"
        if parts.port:
            host = f"{host}:{parts.port}"

    return f"{scheme}://{host}/ws/{encode_identity(identity)}"
