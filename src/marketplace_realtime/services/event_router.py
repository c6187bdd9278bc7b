"""Routes inbound live events into the conversation index, badge and notifications."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum

from marketplace_realtime.domain.entities.notification import Notification
from marketplace_realtime.domain.events.inbound import (
    ApplicationUpdateEvent,
    InboundEvent,
    MessageEvent,
    MessageReadEvent,
    ServerErrorEvent,
    SystemEvent,
)
from marketplace_realtime.domain.value_objects.enums import ApplicationStatus, NotificationKind
from marketplace_realtime.domain.value_objects.ids import ConversationId
from marketplace_realtime.services.application_badge import ApplicationBadge
from marketplace_realtime.services.conversation_index import ConversationIndex
from marketplace_realtime.services.notification_queue import NotificationQueue

logger = logging.getLogger(__name__)

_APPLICATION_TITLES: dict[ApplicationStatus, str] = {
    ApplicationStatus.PENDING: "New application received",
    ApplicationStatus.ACCEPTED: "Application accepted",
    ApplicationStatus.REJECTED: "Application rejected",
}

_SERVER_ERROR_TITLES: dict[str, str] = {
    "message_error": "Message not sent",
    "mark_read_error": "Could not mark message as read",
}


class RouteOutcome(StrEnum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    DROPPED = "dropped"


@dataclass(frozen=True, slots=True)
class RouteResult:
    outcome: RouteOutcome
    conversation_id: ConversationId | None = None
    notification: Notification | None = None


class EventRouter:
    """Applies events in arrival order.

    ``route`` never awaits, so all projection updates for one event happen
    before the next event is looked at.
    """

    def __init__(
        self,
        index: ConversationIndex,
        notifications: NotificationQueue,
        applications: ApplicationBadge,
    ) -> None:
        self._index = index
        self._notifications = notifications
        self._applications = applications
        self._seen_notices: set[str] = set()

    def route(self, event: InboundEvent, *, focused_conversation_id: str | None = None) -> RouteResult:
        if isinstance(event, MessageEvent):
            return self._on_message(event, focused_conversation_id)
        if isinstance(event, MessageReadEvent):
            return self._on_read(event)
        if isinstance(event, ApplicationUpdateEvent):
            return self._on_application(event)
        if isinstance(event, SystemEvent):
            return self._on_system(event)
        if isinstance(event, ServerErrorEvent):
            return self._on_server_error(event)
        logger.warning("Dropping unsupported event %r", event)
        return RouteResult(RouteOutcome.DROPPED)

    def reset(self) -> None:
        self._seen_notices.clear()

    def _on_message(self, event: MessageEvent, focused: str | None) -> RouteResult:
        message = event.message
        viewer_id = self._index.viewer_id
        if not message.involves(viewer_id):
            logger.warning("Dropping message %s not addressed to user %d", message.id, viewer_id)
            return RouteResult(RouteOutcome.DROPPED)
        if self._index.has_message(message.id):
            logger.debug("Duplicate message %s ignored", message.id)
            return RouteResult(RouteOutcome.DUPLICATE)

        conversation = self._index.apply_message(message, event.sender)
        stored = conversation.messages[message.id]

        notification = None
        incoming = message.recipient_id == viewer_id and message.sender_id != viewer_id
        if incoming and stored.read_at is None and conversation.id != focused:
            sender_name = conversation.peer.name or f"User {conversation.peer.id}"
            notification = self._notifications.push(
                NotificationKind.MESSAGE,
                f"New message from {sender_name}",
                message.content,
                conversation_id=conversation.id,
                payload={
                    "message_id": message.id,
                    "sender_id": message.sender_id,
                    "sender_name": sender_name,
                },
            )
        return RouteResult(RouteOutcome.APPLIED, conversation.id, notification)

    def _on_read(self, event: MessageReadEvent) -> RouteResult:
        if self._index.mark_read(event.message_id, event.read_at):
            return RouteResult(RouteOutcome.APPLIED)
        if self._index.has_message(event.message_id):
            return RouteResult(RouteOutcome.DUPLICATE)
        logger.debug("Read ack for unknown message %s kept for later", event.message_id)
        return RouteResult(RouteOutcome.APPLIED)

    def _on_application(self, event: ApplicationUpdateEvent) -> RouteResult:
        previous = self._applications.apply(event.application_id, event.status)
        if previous is event.status:
            return RouteResult(RouteOutcome.DUPLICATE)

        notification = self._notifications.push(
            NotificationKind.APPLICATION,
            _APPLICATION_TITLES[event.status],
            event.title,
            payload={
                "application_id": event.application_id,
                "status": event.status.value,
                "company_id": event.company_id,
            },
        )
        return RouteResult(RouteOutcome.APPLIED, notification=notification)

    def _on_system(self, event: SystemEvent) -> RouteResult:
        if event.notice_id is not None:
            if event.notice_id in self._seen_notices:
                return RouteResult(RouteOutcome.DUPLICATE)
            self._seen_notices.add(event.notice_id)

        notification = self._notifications.push(
            NotificationKind.SYSTEM,
            event.title,
            event.body,
            payload={"notice_id": event.notice_id},
        )
        return RouteResult(RouteOutcome.APPLIED, notification=notification)

    def _on_server_error(self, event: ServerErrorEvent) -> RouteResult:
        logger.warning("Server rejected %s: %s", event.operation, event.detail or "no detail")
        notification = self._notifications.push(
            NotificationKind.FEEDBACK,
            _SERVER_ERROR_TITLES.get(event.operation, "Request failed"),
            event.detail,
            payload={"ok": False, "operation": event.operation},
        )
        return RouteResult(RouteOutcome.APPLIED, notification=notification)
