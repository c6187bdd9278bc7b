from __future__ import annotations

import itertools
from datetime import timedelta

import pytest

from marketplace_realtime.domain.entities.application import ApplicationSummary
from marketplace_realtime.domain.entities.peer import PeerSummary
from marketplace_realtime.domain.events.inbound import (
    ApplicationUpdateEvent,
    MessageEvent,
    MessageReadEvent,
    ServerErrorEvent,
    SystemEvent,
)
from marketplace_realtime.domain.value_objects.enums import ApplicationStatus, NotificationKind
from marketplace_realtime.services.application_badge import ApplicationBadge
from marketplace_realtime.services.conversation_index import ConversationIndex
from marketplace_realtime.services.event_router import EventRouter, RouteOutcome
from marketplace_realtime.services.notification_queue import NotificationQueue
from tests.conftest import T0, FixedClock, make_message

VIEWER = 1
PEER = 2


@pytest.fixture
def parts():
    index = ConversationIndex(VIEWER)
    queue = NotificationQueue(clock=FixedClock())
    badge = ApplicationBadge()
    return EventRouter(index, queue, badge), index, queue, badge


def test_incoming_message_creates_conversation_and_notification(parts):
    router, index, queue, _ = parts
    event = MessageEvent(make_message("1", content="hi there"), sender=PeerSummary(PEER, "Ana"))

    result = router.route(event)

    assert result.outcome is RouteOutcome.APPLIED
    assert result.conversation_id == "1:2"
    conversation = index.get("1:2")
    assert conversation.unread_count == 1
    assert conversation.peer.name == "Ana"
    assert conversation.last_message.id == "1"
    [notification] = queue.active()
    assert notification.kind is NotificationKind.MESSAGE
    assert notification.title == "New message from Ana"
    assert notification.body == "hi there"
    assert notification.conversation_id == "1:2"
    assert result.notification == notification


def test_duplicate_message_is_a_noop(parts):
    router, index, queue, _ = parts
    event = MessageEvent(make_message("1"))

    router.route(event)
    result = router.route(event)

    assert result.outcome is RouteOutcome.DUPLICATE
    assert index.get("1:2").unread_count == 1
    assert len(queue) == 1


def test_outgoing_message_is_not_unread_and_not_notified(parts):
    router, index, queue, _ = parts

    result = router.route(MessageEvent(make_message("1", sender_id=VIEWER, recipient_id=PEER)))

    assert result.outcome is RouteOutcome.APPLIED
    assert index.get("1:2").unread_count == 0
    assert index.get("1:2").peer.id == PEER
    assert len(queue) == 0


def test_focused_conversation_suppresses_notification(parts):
    router, index, queue, _ = parts

    router.route(MessageEvent(make_message("1")), focused_conversation_id="1:2")

    assert index.get("1:2").unread_count == 1
    assert len(queue) == 0


def test_already_read_message_is_not_notified(parts):
    router, _, queue, _ = parts

    router.route(MessageEvent(make_message("1", read_at=T0)))

    assert len(queue) == 0


def test_message_not_involving_viewer_is_dropped(parts):
    router, index, queue, _ = parts

    result = router.route(MessageEvent(make_message("1", sender_id=3, recipient_id=4)))

    assert result.outcome is RouteOutcome.DROPPED
    assert index.conversations() == []
    assert len(queue) == 0


def test_last_message_follows_sent_at_then_id(parts):
    router, index, _, _ = parts

    router.route(MessageEvent(make_message("5", seconds=10)))
    router.route(MessageEvent(make_message("3", seconds=5)))
    assert index.get("1:2").last_message.id == "5"

    router.route(MessageEvent(make_message("10", seconds=10)))
    assert index.get("1:2").last_message.id == "10"


def test_conversations_sorted_by_recent_activity(parts):
    router, index, _, _ = parts

    router.route(MessageEvent(make_message("1", sender_id=2, seconds=1)))
    router.route(MessageEvent(make_message("2", sender_id=3, seconds=5)))
    router.route(MessageEvent(make_message("3", sender_id=4, seconds=3)))

    assert [c.peer.id for c in index.conversations()] == [3, 4, 2]
    assert index.total_unread() == 3


def test_read_ack_after_message(parts):
    router, index, _, _ = parts
    router.route(MessageEvent(make_message("1")))

    result = router.route(MessageReadEvent("1", T0))

    assert result.outcome is RouteOutcome.APPLIED
    assert index.get("1:2").unread_count == 0
    assert router.route(MessageReadEvent("1", T0)).outcome is RouteOutcome.DUPLICATE


def test_read_ack_before_message_is_applied_on_arrival(parts):
    router, index, queue, _ = parts

    router.route(MessageReadEvent("1", T0))
    router.route(MessageEvent(make_message("1")))

    conversation = index.get("1:2")
    assert conversation.unread_count == 0
    assert conversation.messages["1"].read_at == T0
    assert len(queue) == 0


@pytest.mark.parametrize("order", list(itertools.permutations(range(5))))
def test_unread_count_is_independent_of_delivery_order(order):
    events = [
        MessageEvent(make_message("1", seconds=1)),
        MessageEvent(make_message("2", seconds=2)),
        MessageEvent(make_message("3", sender_id=VIEWER, recipient_id=PEER, seconds=3)),
        MessageReadEvent("1", T0 + timedelta(minutes=1)),
        MessageEvent(make_message("2", seconds=2)),
    ]
    index = ConversationIndex(VIEWER)
    router = EventRouter(index, NotificationQueue(clock=FixedClock()), ApplicationBadge())

    for i in order:
        router.route(events[i])

    assert index.get("1:2").unread_count == 1
    assert index.get("1:2").last_message.id == "3"


def test_application_update_notifies_on_status_change(parts):
    router, _, queue, badge = parts

    first = router.route(ApplicationUpdateEvent("a1", ApplicationStatus.PENDING, company_id="c1", title="Ana applied"))
    again = router.route(ApplicationUpdateEvent("a1", ApplicationStatus.PENDING))

    assert first.outcome is RouteOutcome.APPLIED
    assert again.outcome is RouteOutcome.DUPLICATE
    assert badge.pending_count == 1
    [notification] = queue.active()
    assert notification.kind is NotificationKind.APPLICATION
    assert notification.title == "New application received"
    assert notification.payload["status"] == "PENDING"

    router.route(ApplicationUpdateEvent("a1", ApplicationStatus.ACCEPTED))
    assert badge.pending_count == 0
    assert len(queue) == 2


def test_badge_reconcile_corrects_drift(parts):
    router, _, _, badge = parts
    router.route(ApplicationUpdateEvent("a1", ApplicationStatus.PENDING))
    router.route(ApplicationUpdateEvent("a2", ApplicationStatus.PENDING))

    count = badge.reconcile([
        ApplicationSummary("a1", ApplicationStatus.ACCEPTED),
        ApplicationSummary("a3", ApplicationStatus.PENDING),
        ApplicationSummary("a4", ApplicationStatus.PENDING),
        ApplicationSummary("a5", ApplicationStatus.PENDING),
    ])

    assert count == 3
    assert badge.pending_count == 3


def test_system_notice_deduplicated_by_id(parts):
    router, _, queue, _ = parts
    notice = SystemEvent("Maintenance", "Tonight at 22:00", notice_id="n1")

    assert router.route(notice).outcome is RouteOutcome.APPLIED
    assert router.route(notice).outcome is RouteOutcome.DUPLICATE
    router.route(SystemEvent("Anonymous notice"))
    router.route(SystemEvent("Anonymous notice"))

    assert [n.title for n in queue.active()] == ["Maintenance", "Anonymous notice", "Anonymous notice"]


def test_reset_forgets_seen_notices(parts):
    router, _, queue, _ = parts
    router.route(SystemEvent("Maintenance", notice_id="n1"))
    router.reset()

    assert router.route(SystemEvent("Maintenance", notice_id="n1")).outcome is RouteOutcome.APPLIED


def test_backfill_skips_known_messages():
    index = ConversationIndex(VIEWER)
    index.apply_message(make_message("1"))

    applied = index.backfill([
        make_message("1"),
        make_message("2", seconds=1),
        make_message("3", sender_id=5, recipient_id=6),
    ])

    assert applied == 1
    assert index.get("1:2").unread_count == 2


def test_mark_conversation_read_returns_acknowledged_messages():
    index = ConversationIndex(VIEWER)
    index.apply_message(make_message("1", seconds=1))
    index.apply_message(make_message("2", seconds=2))
    index.apply_message(make_message("3", sender_id=VIEWER, recipient_id=PEER, seconds=3))

    acknowledged = index.mark_conversation_read("1:2", T0)

    assert [m.id for m in acknowledged] == ["1", "2"]
    assert index.get("1:2").unread_count == 0
    assert index.mark_conversation_read("1:2", T0) == []
    assert index.mark_conversation_read("9:9", T0) == []


def test_server_error_becomes_feedback_notification(parts):
    router, index, queue, _ = parts

    result = router.route(ServerErrorEvent("message_error", "Recipient blocked"))

    assert result.outcome is RouteOutcome.APPLIED
    [notification] = queue.active()
    assert notification is result.notification
    assert notification.kind is NotificationKind.FEEDBACK
    assert notification.title == "Message not sent"
    assert notification.body == "Recipient blocked"
    assert notification.payload == {"ok": False, "operation": "message_error"}
    assert index.conversations() == []


def test_early_reads_are_capped_oldest_first():
    index = ConversationIndex(VIEWER, max_early_reads=2)
    index.mark_read("1", T0)
    index.mark_read("2", T0 + timedelta(seconds=1))
    index.mark_read("3", T0 + timedelta(seconds=2))

    first = index.apply_message(make_message("1"))
    third = index.apply_message(make_message("3", seconds=2))

    assert first.messages["1"].read_at is None
    assert third.messages["3"].read_at == T0 + timedelta(seconds=2)
    assert index.total_unread() == 1


def test_early_reads_capacity_must_be_positive():
    with pytest.raises(ValueError):
        ConversationIndex(VIEWER, max_early_reads=0)
