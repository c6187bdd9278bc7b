from __future__ import annotations

from dataclasses import dataclass, field

from marketplace_realtime.domain.entities.message import Message
from marketplace_realtime.domain.entities.peer import PeerSummary
from marketplace_realtime.domain.value_objects.ids import ConversationId


@dataclass(slots=True)
class Conversation:
    """Thread state between the viewer and one peer.

    Holds every message applied during the session so that ``unread_count``
    is always derived from them rather than tracked as a separate counter.
    """

    id: ConversationId
    viewer_id: int
    peer: PeerSummary
    last_message: Message | None = None
    messages: dict[str, Message] = field(default_factory=dict)

    @property
    def unread_count(self) -> int:
        return sum(
            1
            for m in self.messages.values()
            if m.sender_id == self.peer.id and m.read_at is None
        )

    def apply(self, message: Message) -> bool:
        """Store ``message``; return True if it became the last message."""
        self.messages[message.id] = message
        if self.last_message is None or message.order_key() > self.last_message.order_key():
            self.last_message = message
            return True
        return False

    def replace(self, message: Message) -> None:
        """Swap in an updated copy of an already applied message."""
        self.messages[message.id] = message
        if self.last_message is not None and self.last_message.id == message.id:
            self.last_message = message

    def unread_messages(self) -> list[Message]:
        return sorted(
            (m for m in self.messages.values() if m.sender_id == self.peer.id and m.read_at is None),
            key=Message.order_key,
        )
