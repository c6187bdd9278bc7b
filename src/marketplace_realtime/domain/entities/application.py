from __future__ import annotations

from dataclasses import dataclass

from marketplace_realtime.domain.value_objects.enums import ApplicationStatus


@dataclass(frozen=True, slots=True)
class ApplicationSummary:
    id: str
    status: ApplicationStatus
    user_id: int | None = None
    publication_id: str | None = None
