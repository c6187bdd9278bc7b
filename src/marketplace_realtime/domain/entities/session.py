from __future__ import annotations

from dataclasses import dataclass

from marketplace_realtime.domain.value_objects.enums import ConnectionState


@dataclass(slots=True)
class Session:
    """One live transport connection, owned by the connection manager."""

    token: str
    state: ConnectionState = ConnectionState.DISCONNECTED
    last_heartbeat_at: float | None = None
    retry_count: int = 0
    successful_connections: int = 0
