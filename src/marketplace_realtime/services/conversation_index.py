"""Per-peer thread state projected from inbound messages."""
from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Iterable
from datetime import datetime

from marketplace_realtime.application.exceptions import ConflictError
from marketplace_realtime.domain.entities.conversation import Conversation
from marketplace_realtime.domain.entities.message import Message
from marketplace_realtime.domain.entities.peer import PeerSummary
from marketplace_realtime.domain.value_objects.ids import ConversationId, conversation_id_for

logger = logging.getLogger(__name__)

MAX_EARLY_READS = 500


class ConversationIndex:
    def __init__(self, viewer_id: int, *, max_early_reads: int = MAX_EARLY_READS) -> None:
        if max_early_reads < 1:
            raise ValueError("max_early_reads must be >= 1")
        self._viewer_id = viewer_id
        self._conversations: dict[ConversationId, Conversation] = {}
        self._message_owner: dict[str, ConversationId] = {}
        # read acknowledgments that arrived before their message, oldest first
        self._early_reads: OrderedDict[str, datetime] = OrderedDict()
        self._max_early_reads = max_early_reads

    @property
    def viewer_id(self) -> int:
        return self._viewer_id

    def has_message(self, message_id: str) -> bool:
        return message_id in self._message_owner

    def get(self, conversation_id: str) -> Conversation | None:
        return self._conversations.get(ConversationId(conversation_id))

    def for_peer(self, peer_id: int) -> Conversation | None:
        return self._conversations.get(conversation_id_for(self._viewer_id, peer_id))

    def conversations(self) -> list[Conversation]:
        """Most recently active first; conversations without messages last."""
        with_last = [c for c in self._conversations.values() if c.last_message is not None]
        without = [c for c in self._conversations.values() if c.last_message is None]
        with_last.sort(key=lambda c: c.last_message.order_key(), reverse=True)  # type: ignore[union-attr]
        return with_last + without

    def total_unread(self) -> int:
        return sum(c.unread_count for c in self._conversations.values())

    def peer_of(self, message: Message) -> int:
        return message.recipient_id if message.sender_id == self._viewer_id else message.sender_id

    def apply_message(self, message: Message, peer: PeerSummary | None = None) -> Conversation:
        if message.id in self._message_owner:
            raise ConflictError(f"Message {message.id} already applied")

        early = self._early_reads.pop(message.id, None)
        if early is not None and message.read_at is None:
            message = message.acknowledge(early)

        conversation = self._upsert(self.peer_of(message), peer)
        conversation.apply(message)
        self._message_owner[message.id] = conversation.id
        return conversation

    def backfill(self, messages: Iterable[Message], peers: dict[int, PeerSummary] | None = None) -> int:
        """Apply history fetched from the server, skipping messages already known."""
        applied = 0
        for message in messages:
            if message.id in self._message_owner or not message.involves(self._viewer_id):
                continue
            self.apply_message(message, (peers or {}).get(self.peer_of(message)))
            applied += 1
        return applied

    def mark_read(self, message_id: str, at: datetime) -> bool:
        """Record a read acknowledgment. Returns True if a stored message changed."""
        conversation_id = self._message_owner.get(message_id)
        if conversation_id is None:
            self._remember_early_read(message_id, at)
            return False
        conversation = self._conversations[conversation_id]
        message = conversation.messages[message_id]
        if message.read_at is not None:
            return False
        conversation.replace(message.acknowledge(at))
        return True

    def mark_conversation_read(self, conversation_id: str, at: datetime) -> list[Message]:
        conversation = self.get(conversation_id)
        if conversation is None:
            return []
        acknowledged = []
        for message in conversation.unread_messages():
            read = message.acknowledge(at)
            conversation.replace(read)
            acknowledged.append(read)
        return acknowledged

    def clear(self) -> None:
        self._conversations.clear()
        self._message_owner.clear()
        self._early_reads.clear()

    def _remember_early_read(self, message_id: str, at: datetime) -> None:
        if message_id in self._early_reads:
            return
        self._early_reads[message_id] = at
        while len(self._early_reads) > self._max_early_reads:
            evicted, _ = self._early_reads.popitem(last=False)
            logger.debug("Early read for %s evicted (buffer full)", evicted)

    def _upsert(self, peer_id: int, peer: PeerSummary | None) -> Conversation:
        conversation_id = conversation_id_for(self._viewer_id, peer_id)
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            conversation = Conversation(
                id=conversation_id,
                viewer_id=self._viewer_id,
                peer=peer if peer is not None and peer.id == peer_id else PeerSummary(id=peer_id),
            )
            self._conversations[conversation_id] = conversation
            logger.debug("Conversation %s created", conversation_id)
        elif peer is not None and peer.id == peer_id and peer != conversation.peer and peer.name:
            conversation.peer = peer
        return conversation
