from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from marketplace_realtime.application.exceptions import ConflictError


@dataclass(frozen=True, slots=True)
class Message:
    id: str
    content: str
    sender_id: int
    recipient_id: int
    sent_at: datetime
    read_at: datetime | None = None

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    def acknowledge(self, at: datetime) -> Message:
        """Return a copy with ``read_at`` set. A message is read at most once."""
        if self.read_at is not None:
            raise ConflictError(f"Message {self.id} already read")
        return replace(self, read_at=at)

    def order_key(self) -> tuple[datetime, tuple[int, int | str]]:
        """Sort key: ``sent_at`` first, ties broken by id.

        Numeric ids compare numerically and sort before non-numeric ones,
        which compare lexically.
        """
        if self.id.isdigit():
            return self.sent_at, (0, int(self.id))
        return self.sent_at, (1, self.id)

    def involves(self, user_id: int) -> bool:
        return user_id in (self.sender_id, self.recipient_id)
