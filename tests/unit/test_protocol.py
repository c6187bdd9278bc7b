from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from marketplace_realtime.application.exceptions import MalformedEvent
from marketplace_realtime.domain.events.inbound import (
    ApplicationUpdateEvent,
    MessageEvent,
    MessageReadEvent,
    ServerErrorEvent,
    SystemEvent,
)
from marketplace_realtime.domain.value_objects.enums import ApplicationStatus
from marketplace_realtime.infrastructure.ws.protocol import (
    IGNORED_TYPES,
    WsEnvelope,
    decode_event,
    encode_frame,
    parse_envelope,
)


def test_new_message_with_camel_case_fields():
    envelope = WsEnvelope(
        type="new_message",
        data={
            "message": {
                "id": 17,
                "content": "hola",
                "senderId": 2,
                "recipientId": 1,
                "sentAt": "2026-01-01T12:00:00",
                "sender": {"id": 2, "name": "Ana"},
            },
            "conversationId": "abc",
        },
    )

    event = decode_event(envelope)

    assert isinstance(event, MessageEvent)
    assert event.message.id == "17"
    assert event.message.sender_id == 2
    assert event.message.sent_at == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    assert event.message.read_at is None
    assert event.sender.name == "Ana"
    assert event.conversation_id == "abc"


def test_message_sent_accepts_snake_case_and_read_at():
    envelope = WsEnvelope(
        type="message_sent",
        data={
            "message": {
                "id": "9",
                "content": "ok",
                "sender_id": 1,
                "recipient_id": 2,
                "created_at": "2026-01-01T12:00:00Z",
                "read_at": "2026-01-01T12:05:00Z",
            },
        },
    )

    event = decode_event(envelope)

    assert event.message.is_read
    assert event.sender is None


def test_message_read_event():
    event = decode_event(WsEnvelope(type="message_read", data={"messageId": 5, "readAt": "2026-01-01T12:00:00Z"}))

    assert isinstance(event, MessageReadEvent)
    assert event.message_id == "5"


def test_application_updated_event():
    event = decode_event(
        WsEnvelope(type="application_updated", data={"id": 3, "status": "ACCEPTED", "companyId": 8}),
    )

    assert isinstance(event, ApplicationUpdateEvent)
    assert event.application_id == "3"
    assert event.status is ApplicationStatus.ACCEPTED
    assert event.company_id == "8"


def test_system_notice_event():
    event = decode_event(WsEnvelope(type="system_notice", data={"id": "n1", "title": "Maintenance"}))

    assert isinstance(event, SystemEvent)
    assert event.notice_id == "n1"
    assert event.body == ""


@pytest.mark.parametrize(
    "envelope",
    [
        WsEnvelope(type="unknown", data={}),
        WsEnvelope(type="new_message", data={"message": {"id": "1"}}),
        WsEnvelope(type="application_updated", data={"id": "1", "status": "LOST"}),
        WsEnvelope(type="system_notice", data={}),
    ],
)
def test_invalid_payloads_raise_malformed_event(envelope):
    with pytest.raises(MalformedEvent):
        decode_event(envelope)


@pytest.mark.parametrize("raw", ["not json", "[]", '{"data": {}}'])
def test_parse_envelope_rejects_garbage(raw):
    with pytest.raises(MalformedEvent):
        parse_envelope(raw)


def test_encode_frame_shape():
    assert json.loads(encode_frame("ping")) == {"type": "ping", "data": {}}
    assert json.loads(encode_frame("mark_as_read", {"messageId": "4"})) == {
        "type": "mark_as_read",
        "data": {"messageId": "4"},
    }


def test_conversation_updated_carries_last_message():
    envelope = WsEnvelope(
        type="conversation_updated",
        data={
            "conversationId": "1:2",
            "lastMessage": {
                "id": 30,
                "content": "see you",
                "senderId": 2,
                "recipientId": 1,
                "sent_at": "2026-01-01T12:00:00Z",
            },
        },
    )

    event = decode_event(envelope)

    assert isinstance(event, MessageEvent)
    assert event.message.id == "30"
    assert event.conversation_id == "1:2"


@pytest.mark.parametrize(
    ("event_type", "data", "detail"),
    [
        ("message_error", {"error": "Recipient blocked"}, "Recipient blocked"),
        ("mark_read_error", {"message": "Unknown message"}, "Unknown message"),
        ("message_error", {}, ""),
    ],
)
def test_server_error_frames(event_type, data, detail):
    event = decode_event(WsEnvelope(type=event_type, data=data))

    assert isinstance(event, ServerErrorEvent)
    assert event.operation == event_type
    assert event.detail == detail


def test_typing_frames_are_known_but_not_decoded():
    assert "user_typing" in IGNORED_TYPES
    with pytest.raises(MalformedEvent):
        decode_event(WsEnvelope(type="user_typing", data={"userId": 2}))
