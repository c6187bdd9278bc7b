from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar, Union

from marketplace_realtime.domain.entities.message import Message
from marketplace_realtime.domain.entities.peer import PeerSummary
from marketplace_realtime.domain.value_objects.enums import ApplicationStatus, EventKind


@dataclass(frozen=True, slots=True)
class MessageEvent:
    kind: ClassVar[EventKind] = EventKind.MESSAGE

    message: Message
    sender: PeerSummary | None = None
    conversation_id: str | None = None


@dataclass(frozen=True, slots=True)
class MessageReadEvent:
    kind: ClassVar[EventKind] = EventKind.MESSAGE_READ

    message_id: str
    read_at: datetime


@dataclass(frozen=True, slots=True)
class ApplicationUpdateEvent:
    kind: ClassVar[EventKind] = EventKind.APPLICATION_UPDATE

    application_id: str
    status: ApplicationStatus
    company_id: str | None = None
    user_id: int | None = None
    title: str = ""


@dataclass(frozen=True, slots=True)
class SystemEvent:
    kind: ClassVar[EventKind] = EventKind.SYSTEM

    title: str
    body: str = ""
    notice_id: str | None = None


@dataclass(frozen=True, slots=True)
class ServerErrorEvent:
    """The server refused an operation sent over the live connection."""

    kind: ClassVar[EventKind] = EventKind.SERVER_ERROR

    operation: str
    detail: str = ""


InboundEvent = Union[MessageEvent, MessageReadEvent, ApplicationUpdateEvent, SystemEvent, ServerErrorEvent]
