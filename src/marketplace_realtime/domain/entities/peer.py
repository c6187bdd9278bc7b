from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class PeerSummary:
    id: int
    name: str = ""
    profile_image: str | None = None
