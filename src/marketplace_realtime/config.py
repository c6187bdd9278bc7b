from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    API_BASE_URL: str = "http://localhost:3001"
    WS_URL: str = "ws://localhost:3001/messages"

    JWT_SECRET: str = ""
    JWT_VERIFY_MODE: Literal["hs256", "jwks"] = "hs256"
    JWT_ALGORITHM: str = "HS256"
    JWKS_URL: str | None = None

    WS_HEARTBEAT_SECONDS: float = 30.0
    WS_HEARTBEAT_TIMEOUT_SECONDS: float = 75.0
    WS_OPEN_TIMEOUT_SECONDS: float = 20.0

    RECONNECT_MAX_RETRIES: int = 5
    RECONNECT_BASE_DELAY: float = 1.0
    RECONNECT_MAX_DELAY: float = 30.0
    RECONNECT_JITTER: float = 0.2

    NOTIFICATION_MAX_ITEMS: int = 20
    # unset: notifications stay until dismissed or their conversation is opened
    NOTIFICATION_TTL_SECONDS: float | None = None

    REMOTE_CALL_TIMEOUT_SECONDS: float = 15.0
    HTTP_TIMEOUT_SECONDS: float = 30.0

    PENDING_APPLICATIONS_POLL_INTERVAL: float = 300.0

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
