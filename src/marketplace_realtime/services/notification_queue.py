"""Bounded, ordered set of notifications currently shown to the user."""
from __future__ import annotations

import logging
import uuid
from collections import OrderedDict
from dataclasses import replace
from datetime import timedelta
from typing import Any, Callable

from marketplace_realtime.application.ports.clock import Clock, SystemClock
from marketplace_realtime.domain.entities.notification import Notification
from marketplace_realtime.domain.value_objects.enums import NotificationKind
from marketplace_realtime.domain.value_objects.ids import ConversationId, NotificationId

logger = logging.getLogger(__name__)

NotificationListener = Callable[[Notification], None]


class NotificationQueue:
    """Insertion-ordered; the oldest entry is evicted once ``max_items`` is reached.

    Notifications stay until dismissed or until their conversation is opened.
    A ``ttl_seconds`` enables timed expiry on top of that.
    """

    def __init__(
        self,
        *,
        max_items: int = 20,
        ttl_seconds: float | None = None,
        clock: Clock | None = None,
    ) -> None:
        if max_items < 1:
            raise ValueError("max_items must be >= 1")
        self._max_items = max_items
        self._ttl = timedelta(seconds=ttl_seconds) if ttl_seconds else None
        self._clock = clock or SystemClock()
        self._items: OrderedDict[NotificationId, Notification] = OrderedDict()
        self._listeners: list[NotificationListener] = []

    def __len__(self) -> int:
        return len(self._items)

    def subscribe(self, listener: NotificationListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._remove_listener(listener)

    def push(
        self,
        kind: NotificationKind,
        title: str,
        body: str = "",
        *,
        conversation_id: ConversationId | None = None,
        payload: dict[str, Any] | None = None,
    ) -> Notification:
        notification = Notification(
            id=NotificationId(uuid.uuid4().hex),
            kind=kind,
            title=title,
            body=body,
            created_at=self._clock.now(),
            conversation_id=conversation_id,
            payload=payload or {},
        )
        self._items[notification.id] = notification
        while len(self._items) > self._max_items:
            evicted_id, _ = self._items.popitem(last=False)
            logger.debug("Notification %s evicted (queue full)", evicted_id)

        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:
                logger.exception("Error in notification listener")
        return notification

    def active(self) -> list[Notification]:
        self.expire()
        return list(self._items.values())

    def get(self, notification_id: str) -> Notification | None:
        return self._items.get(NotificationId(notification_id))

    def dismiss(self, notification_id: str) -> Notification | None:
        removed = self._items.pop(NotificationId(notification_id), None)
        if removed is None:
            return None
        return replace(removed, dismissed=True)

    def dismiss_conversation(self, conversation_id: str) -> int:
        stale = [n.id for n in self._items.values() if n.conversation_id == conversation_id]
        for notification_id in stale:
            del self._items[notification_id]
        return len(stale)

    def expire(self) -> int:
        if self._ttl is None:
            return 0
        cutoff = self._clock.now() - self._ttl
        stale = [n.id for n in self._items.values() if n.created_at <= cutoff]
        for notification_id in stale:
            del self._items[notification_id]
        return len(stale)

    def clear(self) -> None:
        self._items.clear()

    def _remove_listener(self, listener: NotificationListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass
