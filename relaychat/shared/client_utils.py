from datetime import datetime, timezone
from loguru import logger

def make_session_stats() -> dict:
    """
    Returns a fresh stats dictionary with zeroed counters.
    Every SessionState calls this once in __init__.
    Keys: frames_received, frames_dropped, messages_sent, reconnect_count,
          last_frame_at, connected_at.
    """
    return {
        "frames_received": 0,
        "frames_dropped": 0,
        "messages_sent": 0,
        "reconnect_count": 0,
        "last_frame_at": None,
        "connected_at": None,
    }

def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def log_session(event: str, identity: str, level: str = "INFO", **extra) -> None:
    """
    Single structured log entry for a session lifecycle event.
    Writes: identity, event, and any extra fields as key=value pairs.
    """
    log_str = f"identity={identity} event={event}"
    for k, v in extra.items():
        log_str += f" {k}={v}"
    logger.log(level, log_str)
