"""httpx client for the backend confirmation calls."""
from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from marketplace_realtime.application.exceptions import AuthExpired, RemoteCallFailure
from marketplace_realtime.domain.entities.application import ApplicationSummary
from marketplace_realtime.domain.entities.message import Message
from marketplace_realtime.domain.value_objects.enums import ApplicationStatus
from marketplace_realtime.infrastructure.ws.protocol import MessagePayload

logger = logging.getLogger(__name__)

MESSAGES = "/suarec/messages"
PUBLICATIONS = "/suarec/publications"
COMPANIES = "/suarec/companies"
USER_RELATIONS = "/suarec/user-relations"


class ApplicationPayload(BaseModel):
    id: str
    status: ApplicationStatus
    user_id: int | None = Field(default=None, validation_alias=AliasChoices("userId", "user_id"))
    publication_id: str | None = Field(
        default=None, validation_alias=AliasChoices("publicationId", "publication_id"),
    )

    @field_validator("id", "publication_id", mode="before")
    @classmethod
    def _id_to_str(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    def to_summary(self) -> ApplicationSummary:
        return ApplicationSummary(self.id, self.status, self.user_id, self.publication_id)


class ApiClient:
    """Authenticated access to the REST backend.

    Transport errors and non-2xx answers become ``RemoteCallFailure``;
    a 401 becomes ``AuthExpired``.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.HTTPError as exc:
            raise RemoteCallFailure(f"{method} {path} failed: {exc}") from exc

        if response.status_code == 401:
            raise AuthExpired("Token rejected by backend")

        if response.status_code >= 400:
            # the body may echo request data; only the error message is kept
            try:
                err_data = response.json()
                err_msg = err_data.get("error", err_data.get("message", "Request failed"))
            except Exception:
                err_msg = "Request failed"
            raise RemoteCallFailure(
                f"{method} {path} failed ({response.status_code}): {err_msg}",
                status_code=response.status_code,
            )

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    async def close(self) -> None:
        await self._client.aclose()

    # ---- messages ----

    async def create_message(self, content: str, sender_id: int, recipient_id: int) -> Message:
        data = await self.request(
            "POST",
            MESSAGES,
            json={"content": content, "senderId": sender_id, "recipientId": recipient_id},
        )
        return _parse_message(data)

    async def mark_message_read(self, message_id: str) -> Message:
        data = await self.request("PATCH", f"{MESSAGES}/{message_id}/read")
        return _parse_message(data)

    async def get_messages_between(
        self, user_id: int, peer_id: int, *, page: int = 1, limit: int = 50,
    ) -> list[Message]:
        data = await self.request(
            "GET", f"{MESSAGES}/between/{user_id}/{peer_id}", params={"page": page, "limit": limit},
        )
        return [_parse_message(item) for item in data.get("data", [])]

    # ---- likes ----

    async def like_publication(self, publication_id: str) -> None:
        await self.request("POST", f"{PUBLICATIONS}/{publication_id}/like")

    async def unlike_publication(self, publication_id: str) -> None:
        await self.request("DELETE", f"{PUBLICATIONS}/{publication_id}/like")

    async def get_likes_count(self, publication_id: str) -> int:
        data = await self.request("GET", f"{PUBLICATIONS}/{publication_id}/likes/count")
        return int(data.get("count", 0))

    async def has_user_liked(self, publication_id: str) -> bool:
        data = await self.request("GET", f"{PUBLICATIONS}/{publication_id}/like/check")
        return bool(data.get("hasLiked", False))

    # ---- applications / relations ----

    async def get_company_applications(
        self, company_id: str, *, page: int = 1, limit: int = 100,
    ) -> list[ApplicationSummary]:
        data = await self.request(
            "GET", f"{COMPANIES}/{company_id}/applications", params={"page": page, "limit": limit},
        )
        try:
            return [ApplicationPayload.model_validate(item).to_summary() for item in data.get("data", [])]
        except ValidationError as exc:
            raise RemoteCallFailure(f"Unexpected applications payload: {exc.error_count()} error(s)") from exc

    async def has_active_relation(self, user_id: int, company_id: str) -> bool:
        data = await self.request("GET", f"{USER_RELATIONS}/check-relation/{user_id}/{company_id}")
        return bool(data.get("hasActiveRelation", False))


def _parse_message(data: Any) -> Message:
    try:
        return MessagePayload.model_validate(data).to_message()
    except ValidationError as exc:
        raise RemoteCallFailure(f"Unexpected message payload: {exc.error_count()} error(s)") from exc
