from __future__ import annotations

import logging
from collections.abc import Iterable

from marketplace_realtime.domain.entities.application import ApplicationSummary
from marketplace_realtime.domain.value_objects.enums import ApplicationStatus

logger = logging.getLogger(__name__)


class ApplicationBadge:
    """Cached view of the viewer's outstanding applications.

    The pending count is always derived from the known application
    statuses, so a re-fetch of the authoritative list fully corrects it.
    """

    def __init__(self) -> None:
        self._statuses: dict[str, ApplicationStatus] = {}

    @property
    def pending_count(self) -> int:
        return sum(1 for s in self._statuses.values() if s is ApplicationStatus.PENDING)

    def apply(self, application_id: str, status: ApplicationStatus) -> ApplicationStatus | None:
        """Record a live status update and return the previous status."""
        previous = self._statuses.get(application_id)
        self._statuses[application_id] = status
        return previous

    def reconcile(self, applications: Iterable[ApplicationSummary]) -> int:
        before = self.pending_count
        self._statuses = {a.id: a.status for a in applications}
        after = self.pending_count
        if after != before:
            logger.info("Pending applications corrected %d -> %d", before, after)
        return after

    def clear(self) -> None:
        self._statuses.clear()
