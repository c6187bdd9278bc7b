from __future__ import annotations

import asyncio
from dataclasses import dataclass

from marketplace_realtime.application.dto.results import MutationResult
from marketplace_realtime.application.ports.remote import LikesApi
from marketplace_realtime.services.optimistic import OptimisticMutator


@dataclass(frozen=True, slots=True)
class LikeState:
    has_liked: bool = False
    likes_count: int = 0

    def toggled(self) -> LikeState:
        if self.has_liked:
            return LikeState(False, max(0, self.likes_count - 1))
        return LikeState(True, self.likes_count + 1)


def like_key(publication_id: str, user_id: int) -> str:
    return f"like:{publication_id}:{user_id}"


async def load_like_state(
    publication_id: str,
    user_id: int,
    mutator: OptimisticMutator,
    api: LikesApi,
) -> LikeState:
    count, has_liked = await asyncio.gather(
        api.get_likes_count(publication_id),
        api.has_user_liked(publication_id),
    )
    state = LikeState(has_liked=has_liked, likes_count=count)
    mutator.seed(like_key(publication_id, user_id), state)
    return state


async def toggle_like(
    publication_id: str,
    user_id: int,
    mutator: OptimisticMutator,
    api: LikesApi,
    *,
    timeout: float | None = None,
) -> MutationResult[LikeState]:
    """Flip the like locally, then confirm with the backend.

    Raises ``ConcurrentMutationRejected`` while a previous toggle for the
    same publication is still in flight.
    """
    key = like_key(publication_id, user_id)
    before: LikeState = mutator.value(key, LikeState())

    async def _remote() -> None:
        if before.has_liked:
            await api.unlike_publication(publication_id)
        else:
            await api.like_publication(publication_id)

    return await mutator.apply(
        key,
        lambda current: (current or LikeState()).toggled(),
        _remote,
        timeout=timeout,
    )
