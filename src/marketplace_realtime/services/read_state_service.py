from __future__ import annotations

import logging
from datetime import datetime

from marketplace_realtime.application.exceptions import RemoteCallFailure
from marketplace_realtime.application.ports.remote import MessagesApi
from marketplace_realtime.domain.entities.message import Message
from marketplace_realtime.services.conversation_index import ConversationIndex
from marketplace_realtime.services.notification_queue import NotificationQueue

logger = logging.getLogger(__name__)


def open_conversation(
    conversation_id: str,
    index: ConversationIndex,
    notifications: NotificationQueue,
    at: datetime,
) -> list[Message]:
    """Clear unread state and related notifications for a conversation."""
    acknowledged = index.mark_conversation_read(conversation_id, at)
    dismissed = notifications.dismiss_conversation(conversation_id)
    logger.debug(
        "Opened %s: %d message(s) read, %d notification(s) dismissed",
        conversation_id, len(acknowledged), dismissed,
    )
    return acknowledged


async def acknowledge_remote(messages: list[Message], api: MessagesApi) -> int:
    """Best-effort read receipts; the next history fetch corrects any miss."""
    confirmed = 0
    for message in messages:
        try:
            await api.mark_message_read(message.id)
            confirmed += 1
        except RemoteCallFailure as exc:
            logger.warning("mark_read failed for %s: %s", message.id, exc.detail)
    return confirmed
