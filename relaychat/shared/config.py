"""
MODULE OVERVIEW:
Client-wide configuration using Pydantic Settings.

WHAT IS HAPPENING HERE:
Every timing and addressing knob of the connection core lives here instead of
being hardcoded in the manager. The origin plays the role a browser's page
location would play: it decides the transport scheme and the host we dial.
Override any field with a `RELAYCHAT_`-prefixed environment variable or a `.env` file.
"""
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    LOG_LEVEL: str = "INFO"

    # Ambient execution context the endpoint is derived from
    ORIGIN: str = "http://localhost"

    # Local development shortcut: these hosts dial the cluster gateway instead
    DEV_HOSTS: list[str] = ["localhost", "127.0.0.1"]
    DEV_GATEWAY_HOST: str = "192.168.49.2"

    # Reconnection
    RECONNECT_DELAY_S: float = 3.0

    # WebSocket
    OPEN_TIMEOUT_S: float = 10.0

    class Config:
        env_prefix = "RELAYCHAT_"
        env_file = ".env"
        env_file_encoding = 'utf-8'
        extra = 'ignore'

settings = Settings()
