from __future__ import annotations

from dataclasses import dataclass, field

from marketplace_realtime.domain.value_objects.enums import RoleName

ADMIN_ROLES = frozenset({RoleName.ADMIN, RoleName.SUPER_ADMIN})


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated viewer identity extracted from a verified token."""

    user_id: int
    roles: frozenset[str] = field(default_factory=frozenset)
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return not ADMIN_ROLES.isdisjoint(self.roles)

    def has_role(self, role: str) -> bool:
        return role in self.roles
