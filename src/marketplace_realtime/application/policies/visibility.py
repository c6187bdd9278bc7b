"""Field redaction for sensitive contact data on shared records.

Every sensitive field follows the same precedence; only the masking
transform differs per field. All functions here are pure.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable

from marketplace_realtime.application.dto.principal import ADMIN_ROLES, Principal
from marketplace_realtime.domain.value_objects.enums import SensitiveField, VisibilityRule

EMAIL_MASK_RUN = 3
TAX_ID_MARKER = "***-*"
SHORT_VALUE_LENGTH = 4


@dataclass(frozen=True, slots=True)
class VisibilityContext:
    """Viewer facts paired with the owner of the record being displayed."""

    viewer_id: int | None = None
    roles: frozenset[str] = field(default_factory=frozenset)
    owner_id: int | None = None
    is_admin: bool = False
    is_owner: bool = False
    has_active_relation: bool = False
    is_internal_process: bool = False

    @classmethod
    def for_viewer(
        cls,
        principal: Principal | None,
        owner_id: int | None,
        *,
        has_active_relation: bool = False,
        is_internal_process: bool = False,
    ) -> VisibilityContext:
        if principal is None:
            return cls(
                owner_id=owner_id,
                has_active_relation=has_active_relation,
                is_internal_process=is_internal_process,
            )
        return cls(
            viewer_id=principal.user_id,
            roles=frozenset(principal.roles),
            owner_id=owner_id,
            has_active_relation=has_active_relation,
            is_internal_process=is_internal_process,
        )

    @classmethod
    def internal(cls) -> VisibilityContext:
        return cls(is_internal_process=True)


def decide(context: VisibilityContext) -> VisibilityRule:
    """Return the single rule that applies to ``context`` (first match wins)."""
    if context.is_admin or not ADMIN_ROLES.isdisjoint(context.roles):
        return VisibilityRule.ADMIN_ROLE
    if context.is_owner or (
        context.viewer_id is not None
        and context.owner_id is not None
        and context.viewer_id == context.owner_id
    ):
        return VisibilityRule.OWNER
    if context.has_active_relation:
        return VisibilityRule.ACTIVE_RELATION
    if context.is_internal_process:
        return VisibilityRule.INTERNAL_PROCESS
    return VisibilityRule.MASKED


def mask_email(email: str) -> str:
    """``johndoe@example.com`` -> ``jo***e@example.com``."""
    local, at, domain = email.partition("@")
    if not at or not local:
        return email
    n = len(local)
    if n == 1:
        return f"*@{domain}"
    if n <= 3:
        return f"{local[0]}{'*' * (n - 1)}@{domain}"
    stars = min(EMAIL_MASK_RUN, n - 3)
    return f"{local[:2]}{'*' * stars}{local[-1]}@{domain}"


def mask_phone(phone: str) -> str:
    """``3001234567`` -> ``300*****67``. Short numbers are left alone."""
    if len(phone) <= SHORT_VALUE_LENGTH:
        return phone
    return f"{phone[:3]}{'*' * (len(phone) - 5)}{phone[-2:]}"


def mask_tax_id(tax_id: str) -> str:
    """``900123456-7`` -> ``900123***-*``."""
    if len(tax_id) <= SHORT_VALUE_LENGTH:
        return tax_id
    return f"{tax_id[:-len(TAX_ID_MARKER)]}{TAX_ID_MARKER}"


_MASKERS: dict[SensitiveField, Callable[[str], str]] = {
    SensitiveField.EMAIL: mask_email,
    SensitiveField.PHONE: mask_phone,
    SensitiveField.TAX_ID: mask_tax_id,
}


def reveal(sensitive_field: SensitiveField, raw_value: str | None, context: VisibilityContext) -> str | None:
    if not raw_value:
        return raw_value
    if decide(context) is not VisibilityRule.MASKED:
        return raw_value
    return _MASKERS[sensitive_field](raw_value)


def reveal_email(raw_value: str | None, context: VisibilityContext) -> str | None:
    return reveal(SensitiveField.EMAIL, raw_value, context)


def reveal_phone(raw_value: str | None, context: VisibilityContext) -> str | None:
    return reveal(SensitiveField.PHONE, raw_value, context)


def reveal_tax_id(raw_value: str | None, context: VisibilityContext) -> str | None:
    return reveal(SensitiveField.TAX_ID, raw_value, context)


DEFAULT_SENSITIVE_FIELDS: Mapping[str, SensitiveField] = {
    "email": SensitiveField.EMAIL,
    "phone": SensitiveField.PHONE,
    "cellphone": SensitiveField.PHONE,
    "nit": SensitiveField.TAX_ID,
    "tax_id": SensitiveField.TAX_ID,
}


def redact(
    record: Mapping[str, Any],
    context: VisibilityContext,
    fields: Mapping[str, SensitiveField] = DEFAULT_SENSITIVE_FIELDS,
) -> dict[str, Any]:
    """Copy of ``record`` with every known sensitive string key revealed or masked."""
    out = dict(record)
    for key, sensitive_field in fields.items():
        value = out.get(key)
        if isinstance(value, str):
            out[key] = reveal(sensitive_field, value, context)
    return out

