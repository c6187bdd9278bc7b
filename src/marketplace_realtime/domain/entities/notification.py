from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from marketplace_realtime.domain.value_objects.enums import NotificationKind
from marketplace_realtime.domain.value_objects.ids import ConversationId, NotificationId


@dataclass(frozen=True, slots=True)
class Notification:
    id: NotificationId
    kind: NotificationKind
    title: str
    body: str
    created_at: datetime
    conversation_id: ConversationId | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    dismissed: bool = False
