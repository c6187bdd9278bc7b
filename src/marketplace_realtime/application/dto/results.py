from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from marketplace_realtime.application.exceptions import AppError
from marketplace_realtime.domain.value_objects.enums import MutationStatus

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class MutationResult(Generic[T]):
    """Outcome of an optimistic mutation once the remote call settled."""

    entity_key: str
    status: MutationStatus
    value: T | None
    error: AppError | None = None

    @property
    def ok(self) -> bool:
        return self.status == MutationStatus.CONFIRMED

    @property
    def rolled_back(self) -> bool:
        return self.status == MutationStatus.ROLLED_BACK
