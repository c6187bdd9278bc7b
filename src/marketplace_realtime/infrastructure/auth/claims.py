"""Schema for the decoded identity token."""
from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, Field, ValidationError

from marketplace_realtime.application.dto.principal import Principal
from marketplace_realtime.application.exceptions import AuthExpired


class RoleClaim(BaseModel):
    name: str
    id: str | int | None = None


class IdentityClaims(BaseModel):
    id: int = Field(validation_alias=AliasChoices("id", "sub"))
    email: str | None = None
    roles: list[RoleClaim] = []

    def to_principal(self) -> Principal:
        return Principal(
            user_id=self.id,
            roles=frozenset(r.name for r in self.roles),
            email=self.email,
        )


def principal_from_payload(payload: dict[str, Any]) -> Principal:
    try:
        return IdentityClaims.model_validate(payload).to_principal()
    except ValidationError as exc:
        raise AuthExpired(f"Token payload is not a valid identity: {exc.error_count()} error(s)") from exc
