"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from marketplace_realtime.application.dto.principal import Principal
from marketplace_realtime.application.exceptions import TransportError
from marketplace_realtime.domain.entities.application import ApplicationSummary
from marketplace_realtime.domain.entities.message import Message
from marketplace_realtime.domain.value_objects.enums import RoleName
from marketplace_realtime.infrastructure.ws.manager import HeartbeatPolicy, ReconnectPolicy

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

FAST_RECONNECT = ReconnectPolicy(max_retries=3, base_delay=0.01, max_delay=0.05, jitter=0.0)
SLOW_HEARTBEAT = HeartbeatPolicy(interval=60.0, timeout=120.0)


@pytest.fixture
def person() -> Principal:
    return make_principal(1, RoleName.PERSON)


@pytest.fixture
def business() -> Principal:
    return make_principal(2, RoleName.BUSINESS)


@pytest.fixture
def admin() -> Principal:
    return make_principal(99, RoleName.ADMIN)


def make_principal(user_id: int = 1, *roles: str) -> Principal:
    return Principal(user_id=user_id, roles=frozenset(roles))


def make_message(
    message_id: str = "1",
    *,
    sender_id: int = 2,
    recipient_id: int = 1,
    content: str = "hello",
    seconds: int = 0,
    read_at: datetime | None = None,
) -> Message:
    return Message(
        id=message_id,
        content=content,
        sender_id=sender_id,
        recipient_id=recipient_id,
        sent_at=T0 + timedelta(seconds=seconds),
        read_at=read_at,
    )


def message_data(message: Message, *, sender_name: str | None = None) -> dict[str, Any]:
    """Wire payload for a ``new_message`` / ``message_sent`` frame."""
    payload: dict[str, Any] = {
        "id": message.id,
        "content": message.content,
        "senderId": message.sender_id,
        "recipientId": message.recipient_id,
        "sent_at": message.sent_at.isoformat(),
    }
    if message.read_at is not None:
        payload["read_at"] = message.read_at.isoformat()
    if sender_name is not None:
        payload["sender"] = {"id": message.sender_id, "name": sender_name}
    return {"message": payload}


async def wait_until(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


class FixedClock:
    def __init__(self, now: datetime = T0) -> None:
        self._now = now

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)


class FakeTransport:
    """In-memory channel; frames pushed by the test come out of ``recv``."""

    def __init__(self, *, auto_pong: bool = True) -> None:
        self.inbox: asyncio.Queue[str | BaseException] = asyncio.Queue()
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.auto_pong = auto_pong

    async def send(self, raw: str) -> None:
        if self.closed:
            raise TransportError("closed")
        frame = json.loads(raw)
        self.sent.append(frame)
        if self.auto_pong and frame["type"] == "ping":
            self.push("pong")

    async def recv(self) -> str:
        item = await self.inbox.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True

    def push(self, event_type: str, data: dict[str, Any] | None = None) -> None:
        self.inbox.put_nowait(json.dumps({"type": event_type, "data": data or {}}))

    def push_raw(self, raw: str) -> None:
        self.inbox.put_nowait(raw)

    def drop(self, exc: BaseException | None = None) -> None:
        self.inbox.put_nowait(exc or TransportError("connection reset"))

    def sent_types(self) -> list[str]:
        return [f["type"] for f in self.sent]


class FakeTransportFactory:
    """Each call pops the next scripted outcome: an exception to raise, or None to open."""

    def __init__(
        self,
        outcomes: list[BaseException | None] | None = None,
        *,
        always: BaseException | None = None,
        auto_pong: bool = True,
    ) -> None:
        self.outcomes = list(outcomes or [])
        self.always = always
        self.auto_pong = auto_pong
        self.attempts = 0
        self.tokens: list[str] = []
        self.opened: list[FakeTransport] = []

    async def __call__(self, token: str) -> FakeTransport:
        self.attempts += 1
        self.tokens.append(token)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if outcome is not None:
                raise outcome
        elif self.always is not None:
            raise self.always
        transport = FakeTransport(auto_pong=self.auto_pong)
        self.opened.append(transport)
        return transport

    @property
    def current(self) -> FakeTransport:
        return self.opened[-1]


@dataclass
class FakeBackendApi:
    """Scriptable stand-in for the REST backend."""

    likes: dict[str, int] = field(default_factory=dict)
    liked: set[str] = field(default_factory=set)
    history: list[Message] = field(default_factory=list)
    applications: list[ApplicationSummary] = field(default_factory=list)
    relations: set[tuple[int, str]] = field(default_factory=set)
    failures: dict[str, Exception] = field(default_factory=dict)
    gate: asyncio.Event | None = None
    created: list[Message] = field(default_factory=list)
    read_calls: list[str] = field(default_factory=list)
    calls: list[str] = field(default_factory=list)
    closed: bool = False
    _next_id: int = 1000

    async def _enter(self, name: str) -> None:
        self.calls.append(name)
        if self.gate is not None:
            await self.gate.wait()
        exc = self.failures.get(name)
        if exc is not None:
            raise exc

    async def create_message(self, content: str, sender_id: int, recipient_id: int) -> Message:
        await self._enter("create_message")
        self._next_id += 1
        message = Message(str(self._next_id), content, sender_id, recipient_id, T0 + timedelta(hours=1))
        self.created.append(message)
        return message

    async def mark_message_read(self, message_id: str) -> Message:
        await self._enter("mark_message_read")
        self.read_calls.append(message_id)
        return Message(message_id, "", 0, 0, T0, read_at=T0)

    async def get_messages_between(
        self, user_id: int, peer_id: int, *, page: int = 1, limit: int = 50,
    ) -> list[Message]:
        await self._enter("get_messages_between")
        return [m for m in self.history if m.involves(user_id) and m.involves(peer_id)][:limit]

    async def like_publication(self, publication_id: str) -> None:
        await self._enter("like_publication")
        self.liked.add(publication_id)
        self.likes[publication_id] = self.likes.get(publication_id, 0) + 1

    async def unlike_publication(self, publication_id: str) -> None:
        await self._enter("unlike_publication")
        self.liked.discard(publication_id)
        self.likes[publication_id] = max(0, self.likes.get(publication_id, 0) - 1)

    async def get_likes_count(self, publication_id: str) -> int:
        await self._enter("get_likes_count")
        return self.likes.get(publication_id, 0)

    async def has_user_liked(self, publication_id: str) -> bool:
        await self._enter("has_user_liked")
        return publication_id in self.liked

    async def get_company_applications(
        self, company_id: str, *, page: int = 1, limit: int = 100,
    ) -> list[ApplicationSummary]:
        await self._enter("get_company_applications")
        return list(self.applications)

    async def has_active_relation(self, user_id: int, company_id: str) -> bool:
        await self._enter("has_active_relation")
        return (user_id, company_id) in self.relations

    async def close(self) -> None:
        self.closed = True
