from __future__ import annotations

from typing import NewType

ConversationId = NewType("ConversationId", str)
NotificationId = NewType("NotificationId", str)


def conversation_id_for(user_a: int, user_b: int) -> ConversationId:
    """Key for the unordered pair of participants."""
    low, high = sorted((user_a, user_b))
    return ConversationId(f"{low}:{high}")
