from __future__ import annotations

import logging

from marketplace_realtime.application.dto.principal import Principal
from marketplace_realtime.application.exceptions import RemoteCallFailure
from marketplace_realtime.application.policies.visibility import VisibilityContext, decide
from marketplace_realtime.application.ports.remote import RelationsApi
from marketplace_realtime.domain.value_objects.enums import VisibilityRule

logger = logging.getLogger(__name__)


async def build_visibility_context(
    principal: Principal | None,
    owner_id: int | None,
    *,
    company_id: str | None = None,
    relations: RelationsApi | None = None,
    is_internal_process: bool = False,
) -> VisibilityContext:
    """Collect viewer facts for a record, looking up the active relation if it matters."""
    context = VisibilityContext.for_viewer(
        principal, owner_id, is_internal_process=is_internal_process,
    )
    if principal is None or company_id is None or relations is None:
        return context
    if decide(context) in (VisibilityRule.ADMIN_ROLE, VisibilityRule.OWNER):
        return context

    try:
        has_relation = await relations.has_active_relation(principal.user_id, company_id)
    except RemoteCallFailure as exc:
        logger.warning("Relation lookup failed for company %s: %s", company_id, exc.detail)
        has_relation = False

    return VisibilityContext.for_viewer(
        principal,
        owner_id,
        has_active_relation=has_relation,
        is_internal_process=is_internal_process,
    )
