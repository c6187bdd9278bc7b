"""Optimistic local mutations confirmed (or reverted) by a remote call."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from marketplace_realtime.application.dto.results import MutationResult
from marketplace_realtime.application.exceptions import (
    AppError,
    ConcurrentMutationRejected,
    RemoteCallFailure,
)
from marketplace_realtime.domain.value_objects.enums import MutationStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

LocalTransition = Callable[[Any], Any]
RemoteCall = Callable[[], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class OptimisticState(Generic[T]):
    value: T | None
    pending: bool = False
    previous: T | None = None


class OptimisticMutator:
    """Applies local transitions immediately and reconciles with the backend.

    At most one remote call per entity key is in flight; a second ``apply``
    for the same key is rejected instead of being queued.
    """

    def __init__(self, *, default_timeout: float | None = None) -> None:
        self._default_timeout = default_timeout
        self._states: dict[str, OptimisticState[Any]] = {}
        self._inflight: dict[str, asyncio.Future[Any]] = {}

    def seed(self, entity_key: str, value: Any) -> None:
        """Record an authoritative value fetched outside of a mutation."""
        state = self._states.get(entity_key)
        if state is not None and state.pending:
            # rollback target follows the freshest authoritative value
            self._states[entity_key] = OptimisticState(state.value, True, value)
            return
        self._states[entity_key] = OptimisticState(value)

    def get(self, entity_key: str) -> OptimisticState[Any] | None:
        return self._states.get(entity_key)

    def value(self, entity_key: str, default: Any = None) -> Any:
        state = self._states.get(entity_key)
        return default if state is None else state.value

    def is_pending(self, entity_key: str) -> bool:
        state = self._states.get(entity_key)
        return state is not None and state.pending

    async def apply(
        self,
        entity_key: str,
        local_transition: LocalTransition,
        remote_call: RemoteCall,
        *,
        timeout: float | None = None,
    ) -> MutationResult[Any]:
        """Run one optimistic mutation.

        ``remote_call`` returns the authoritative value, or ``None`` to keep
        the locally transitioned one. Failures and timeouts revert the entity
        and come back as a ``ROLLED_BACK`` result rather than an exception.
        """
        if self.is_pending(entity_key):
            logger.debug("Mutation for %s rejected: already in flight", entity_key)
            raise ConcurrentMutationRejected(entity_key)

        current = self.value(entity_key)
        optimistic = local_transition(current)
        self._states[entity_key] = OptimisticState(optimistic, True, current)

        limit = self._default_timeout if timeout is None else timeout
        try:
            task = asyncio.ensure_future(remote_call())
        except Exception as exc:
            return self._rollback(entity_key, _as_failure(exc), current)
        self._inflight[entity_key] = task
        try:
            done, _ = await asyncio.wait({task}, timeout=limit)
        except asyncio.CancelledError:
            task.cancel()
            self._rollback(entity_key, RemoteCallFailure("Caller cancelled"), current)
            raise
        finally:
            self._inflight.pop(entity_key, None)

        if not done:
            task.cancel()
            return self._rollback(entity_key, RemoteCallFailure(f"No confirmation within {limit}s"), current)
        if task.cancelled():
            return self._rollback(entity_key, RemoteCallFailure("Discarded before confirmation"), current)

        exc = task.exception()
        if exc is not None:
            return self._rollback(entity_key, _as_failure(exc), current)

        return self._confirm(entity_key, task.result(), optimistic)

    def discard_all(self) -> int:
        """Cancel every in-flight remote call; their ``apply`` calls roll back."""
        pending = [t for t in self._inflight.values() if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            logger.info("Discarded %d unconfirmed mutation(s)", len(pending))
        return len(pending)

    def clear(self) -> None:
        self.discard_all()
        self._states.clear()

    def _confirm(self, entity_key: str, authoritative: Any, optimistic: Any) -> MutationResult[Any]:
        value = optimistic if authoritative is None else authoritative
        if authoritative is not None and authoritative != optimistic:
            logger.debug("Reconciled %s to authoritative value", entity_key)
        if self.is_pending(entity_key):
            self._states[entity_key] = OptimisticState(value)
        return MutationResult(entity_key, MutationStatus.CONFIRMED, value)

    def _rollback(self, entity_key: str, error: AppError, before: Any) -> MutationResult[Any]:
        # a key dropped by clear() while in flight stays dropped
        state = self._states.get(entity_key)
        previous = before
        if state is not None and state.pending:
            previous = state.previous
            self._states[entity_key] = OptimisticState(previous)
        logger.warning("Mutation for %s rolled back: %s", entity_key, error.detail)
        return MutationResult(entity_key, MutationStatus.ROLLED_BACK, previous, error)


def _as_failure(exc: BaseException) -> AppError:
    return exc if isinstance(exc, AppError) else RemoteCallFailure(str(exc) or type(exc).__name__)
