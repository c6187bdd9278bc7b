from __future__ import annotations

from typing import Protocol

from marketplace_realtime.domain.entities.application import ApplicationSummary
from marketplace_realtime.domain.entities.message import Message


class MessagesApi(Protocol):
    async def create_message(self, content: str, sender_id: int, recipient_id: int) -> Message: ...

    async def mark_message_read(self, message_id: str) -> Message: ...

    async def get_messages_between(
        self, user_id: int, peer_id: int, *, page: int = 1, limit: int = 50,
    ) -> list[Message]: ...


class LikesApi(Protocol):
    async def like_publication(self, publication_id: str) -> None: ...

    async def unlike_publication(self, publication_id: str) -> None: ...

    async def get_likes_count(self, publication_id: str) -> int: ...

    async def has_user_liked(self, publication_id: str) -> bool: ...


class ApplicationsApi(Protocol):
    async def get_company_applications(
        self, company_id: str, *, page: int = 1, limit: int = 100,
    ) -> list[ApplicationSummary]: ...


class RelationsApi(Protocol):
    async def has_active_relation(self, user_id: int, company_id: str) -> bool: ...


class BackendApi(MessagesApi, LikesApi, ApplicationsApi, RelationsApi, Protocol):
    async def close(self) -> None: ...
