from __future__ import annotations

from marketplace_realtime.application.dto.principal import Principal
from marketplace_realtime.application.exceptions import ForbiddenError
from marketplace_realtime.domain.value_objects.enums import RoleName


def assert_can_apply(principal: Principal, company_owner_id: int) -> None:
    """Raise unless the viewer may send a quick application to this company."""
    if not principal.has_role(RoleName.PERSON):
        raise ForbiddenError("Only persons can apply to companies")

    if principal.user_id == company_owner_id:
        raise ForbiddenError("Cannot apply to your own company")


def assert_can_message(principal: Principal, recipient_id: int) -> None:
    if principal.user_id == recipient_id:
        raise ForbiddenError("Cannot send a message to yourself")


def sees_pending_applications(principal: Principal) -> bool:
    """Only business accounts carry the pending-application badge."""
    return principal.has_role(RoleName.BUSINESS)
