from __future__ import annotations

import logging

from marketplace_realtime.application.dto.principal import Principal
from marketplace_realtime.application.dto.results import MutationResult
from marketplace_realtime.application.policies.permissions import assert_can_apply
from marketplace_realtime.application.ports.remote import MessagesApi
from marketplace_realtime.domain.value_objects.enums import NotificationKind
from marketplace_realtime.services.notification_queue import NotificationQueue
from marketplace_realtime.services.optimistic import OptimisticMutator

logger = logging.getLogger(__name__)

APPLICATION_MESSAGE = (
    "Hello! I am interested in joining the {company} team.\n\n"
    "I would like to learn more about the open positions and how I can "
    "contribute to the company's growth.\n\n"
    "Looking forward to talking soon.\n\n"
    "Kind regards."
)


def apply_key(company_id: str, user_id: int) -> str:
    return f"apply:{company_id}:{user_id}"


async def apply_to_company(
    principal: Principal,
    company_id: str,
    company_name: str,
    company_owner_id: int,
    mutator: OptimisticMutator,
    api: MessagesApi,
    notifications: NotificationQueue,
    *,
    timeout: float | None = None,
) -> MutationResult[bool]:
    """Quick-apply: message the company owner and toast the outcome.

    There is no local counter, so a failure only produces the error toast.
    """
    assert_can_apply(principal, company_owner_id)
    content = APPLICATION_MESSAGE.format(company=company_name)

    async def _remote() -> bool:
        await api.create_message(content, principal.user_id, company_owner_id)
        return True

    result = await mutator.apply(
        apply_key(company_id, principal.user_id),
        lambda current: current,
        _remote,
        timeout=timeout,
    )

    if result.ok:
        logger.info("User %d applied to company %s", principal.user_id, company_id)
        notifications.push(
            NotificationKind.FEEDBACK,
            "Application sent",
            f"Your application to {company_name} was sent.",
            payload={"company_id": company_id, "ok": True},
        )
    else:
        notifications.push(
            NotificationKind.FEEDBACK,
            "Application failed",
            "Your application could not be sent. Please try again.",
            payload={"company_id": company_id, "ok": False},
        )
    return result
