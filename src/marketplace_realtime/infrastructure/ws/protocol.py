"""WebSocket message envelope models and inbound event decoding."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from marketplace_realtime.application.exceptions import MalformedEvent
from marketplace_realtime.domain.entities.message import Message
from marketplace_realtime.domain.entities.peer import PeerSummary
from marketplace_realtime.domain.events.inbound import (
    ApplicationUpdateEvent,
    InboundEvent,
    MessageEvent,
    MessageReadEvent,
    ServerErrorEvent,
    SystemEvent,
)
from marketplace_realtime.domain.value_objects.enums import ApplicationStatus

# server -> client
NEW_MESSAGE = "new_message"
MESSAGE_SENT = "message_sent"
MESSAGE_READ = "message_read"
APPLICATION_UPDATED = "application_updated"
SYSTEM_NOTICE = "system_notice"
CONVERSATION_UPDATED = "conversation_updated"
MESSAGE_ERROR = "message_error"
MARK_READ_ERROR = "mark_read_error"
USER_TYPING = "user_typing"
PONG = "pong"
AUTH_EXPIRED = "auth_expired"

# client -> server
PING = "ping"
JOIN_CONVERSATION = "join_conversation"
LEAVE_CONVERSATION = "leave_conversation"
MARK_AS_READ = "mark_as_read"

# recognised, but nothing local is projected from them
IGNORED_TYPES = frozenset({USER_TYPING})


class WsEnvelope(BaseModel):
    """Frame in either direction."""

    type: str
    data: dict[str, Any] = {}


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SenderPayload(BaseModel):
    id: int
    name: str = ""
    profile_image: str | None = None


class MessagePayload(BaseModel):
    id: str
    content: str
    sender_id: int = Field(validation_alias=AliasChoices("senderId", "sender_id"))
    recipient_id: int = Field(validation_alias=AliasChoices("recipientId", "recipient_id"))
    sent_at: datetime = Field(validation_alias=AliasChoices("sent_at", "sentAt", "created_at"))
    read_at: datetime | None = Field(default=None, validation_alias=AliasChoices("read_at", "readAt"))
    sender: SenderPayload | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @field_validator("sent_at", "read_at")
    @classmethod
    def _tz(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v)

    def to_message(self) -> Message:
        return Message(
            id=self.id,
            content=self.content,
            sender_id=self.sender_id,
            recipient_id=self.recipient_id,
            sent_at=self.sent_at,
            read_at=self.read_at,
        )


class MessageData(BaseModel):
    message: MessagePayload
    conversation_id: str | None = Field(
        default=None, validation_alias=AliasChoices("conversationId", "conversation_id"),
    )


class ConversationUpdatedData(BaseModel):
    conversation_id: str | None = Field(
        default=None, validation_alias=AliasChoices("conversationId", "conversation_id"),
    )
    last_message: MessagePayload = Field(validation_alias=AliasChoices("lastMessage", "last_message"))


class MessageReadData(BaseModel):
    message_id: str = Field(validation_alias=AliasChoices("messageId", "message_id"))
    read_at: datetime = Field(validation_alias=AliasChoices("readAt", "read_at"))

    @field_validator("message_id", mode="before")
    @classmethod
    def _id_to_str(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @field_validator("read_at")
    @classmethod
    def _tz(cls, v: datetime) -> datetime:
        return _as_utc(v)  # type: ignore[return-value]


class ApplicationUpdatedData(BaseModel):
    application_id: str = Field(validation_alias=AliasChoices("applicationId", "application_id", "id"))
    status: ApplicationStatus
    company_id: str | None = Field(default=None, validation_alias=AliasChoices("companyId", "company_id"))
    user_id: int | None = Field(default=None, validation_alias=AliasChoices("userId", "user_id"))
    title: str = ""

    @field_validator("application_id", "company_id", mode="before")
    @classmethod
    def _id_to_str(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v


class ServerErrorData(BaseModel):
    error: str = Field(default="", validation_alias=AliasChoices("error", "message", "detail"))


class SystemNoticeData(BaseModel):
    notice_id: str | None = Field(default=None, validation_alias=AliasChoices("noticeId", "notice_id", "id"))
    title: str
    body: str = ""

    @field_validator("notice_id", mode="before")
    @classmethod
    def _id_to_str(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v


def _to_message_event(payload: MessagePayload, conversation_id: str | None) -> MessageEvent:
    sender = payload.sender
    return MessageEvent(
        message=payload.to_message(),
        sender=PeerSummary(sender.id, sender.name, sender.profile_image) if sender else None,
        conversation_id=conversation_id,
    )


def _message_event(data: dict[str, Any]) -> MessageEvent:
    parsed = MessageData.model_validate(data)
    return _to_message_event(parsed.message, parsed.conversation_id)


def _conversation_event(data: dict[str, Any]) -> MessageEvent:
    parsed = ConversationUpdatedData.model_validate(data)
    return _to_message_event(parsed.last_message, parsed.conversation_id)


def _read_event(data: dict[str, Any]) -> MessageReadEvent:
    parsed = MessageReadData.model_validate(data)
    return MessageReadEvent(message_id=parsed.message_id, read_at=parsed.read_at)


def _application_event(data: dict[str, Any]) -> ApplicationUpdateEvent:
    parsed = ApplicationUpdatedData.model_validate(data)
    return ApplicationUpdateEvent(
        application_id=parsed.application_id,
        status=parsed.status,
        company_id=parsed.company_id,
        user_id=parsed.user_id,
        title=parsed.title,
    )


def _system_event(data: dict[str, Any]) -> SystemEvent:
    parsed = SystemNoticeData.model_validate(data)
    return SystemEvent(title=parsed.title, body=parsed.body, notice_id=parsed.notice_id)


def _server_error_event(operation: str) -> Callable[[dict[str, Any]], ServerErrorEvent]:
    def decode(data: dict[str, Any]) -> ServerErrorEvent:
        return ServerErrorEvent(operation=operation, detail=ServerErrorData.model_validate(data).error)

    return decode


_DECODERS = {
    NEW_MESSAGE: _message_event,
    MESSAGE_SENT: _message_event,
    MESSAGE_READ: _read_event,
    APPLICATION_UPDATED: _application_event,
    SYSTEM_NOTICE: _system_event,
    CONVERSATION_UPDATED: _conversation_event,
    MESSAGE_ERROR: _server_error_event(MESSAGE_ERROR),
    MARK_READ_ERROR: _server_error_event(MARK_READ_ERROR),
}


def parse_envelope(raw: str | bytes) -> WsEnvelope:
    try:
        return WsEnvelope.model_validate_json(raw)
    except ValidationError as exc:
        raise MalformedEvent(f"invalid frame: {exc.error_count()} error(s)") from exc


def decode_event(envelope: WsEnvelope) -> InboundEvent:
    """Turn a frame into an inbound event or raise ``MalformedEvent``."""
    decoder = _DECODERS.get(envelope.type)
    if decoder is None:
        raise MalformedEvent(f"unknown event type: {envelope.type}")
    try:
        return decoder(envelope.data)
    except ValidationError as exc:
        raise MalformedEvent(f"invalid {envelope.type} payload: {exc.error_count()} error(s)") from exc


def encode_frame(event_type: str, data: dict[str, Any] | None = None) -> str:
    return WsEnvelope(type=event_type, data=data or {}).model_dump_json()
