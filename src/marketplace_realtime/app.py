"""Session-scoped facade wiring the live connection to the local projections.

One ``RealtimeApp`` exists per logged-in user; ``shutdown`` ends it.
"""
from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable

from marketplace_realtime.application.dto.principal import Principal
from marketplace_realtime.application.dto.results import MutationResult
from marketplace_realtime.application.exceptions import AuthExpired, MalformedEvent, TransportError
from marketplace_realtime.application.policies.permissions import sees_pending_applications
from marketplace_realtime.application.policies.visibility import VisibilityContext
from marketplace_realtime.application.ports.clock import Clock, SystemClock
from marketplace_realtime.application.ports.remote import BackendApi
from marketplace_realtime.application.ports.transport import TransportFactory
from marketplace_realtime.config import Settings, settings as default_settings
from marketplace_realtime.domain.entities.conversation import Conversation
from marketplace_realtime.domain.entities.message import Message
from marketplace_realtime.domain.entities.notification import Notification
from marketplace_realtime.domain.events.inbound import MessageEvent
from marketplace_realtime.domain.value_objects.enums import ConnectionState
from marketplace_realtime.domain.value_objects.ids import ConversationId
from marketplace_realtime.infrastructure.http.api_client import ApiClient
from marketplace_realtime.infrastructure.ws.manager import (
    ConnectionManager,
    HeartbeatPolicy,
    ReconnectPolicy,
)
from marketplace_realtime.infrastructure.ws.protocol import (
    IGNORED_TYPES,
    JOIN_CONVERSATION,
    LEAVE_CONVERSATION,
    MARK_AS_READ,
    WsEnvelope,
    decode_event,
)
from marketplace_realtime.infrastructure.ws.websockets_transport import WebSocketsTransportFactory
from marketplace_realtime.services import (
    application_service,
    like_service,
    message_service,
    read_state_service,
    visibility_service,
)
from marketplace_realtime.services.application_badge import ApplicationBadge
from marketplace_realtime.services.conversation_index import ConversationIndex
from marketplace_realtime.services.event_router import EventRouter, RouteOutcome
from marketplace_realtime.services.notification_queue import NotificationQueue
from marketplace_realtime.services.optimistic import OptimisticMutator
from marketplace_realtime.workers.pending_applications_poller import PendingApplicationsPoller

logger = logging.getLogger(__name__)

AuthExpiredCallback = Callable[[], Any]


class RealtimeApp:
    def __init__(
        self,
        principal: Principal,
        connection: ConnectionManager,
        api: BackendApi,
        *,
        index: ConversationIndex,
        notifications: NotificationQueue,
        badge: ApplicationBadge,
        mutator: OptimisticMutator,
        poller: PendingApplicationsPoller | None = None,
        clock: Clock | None = None,
        remote_timeout: float | None = None,
        on_auth_expired: AuthExpiredCallback | None = None,
    ) -> None:
        self.principal = principal
        self.connection = connection
        self.api = api
        self.index = index
        self.notifications = notifications
        self.badge = badge
        self.mutator = mutator
        self.poller = poller
        self.router = EventRouter(index, notifications, badge)
        self._clock = clock or SystemClock()
        self._remote_timeout = remote_timeout
        self._on_auth_expired = on_auth_expired
        self._focused: ConversationId | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._unsubscribe: list[Callable[[], None]] = []
        self._closed = False

    # ---- lifecycle ----

    async def start(self) -> None:
        self._unsubscribe = [
            self.connection.subscribe_frames(self._on_frame),
            self.connection.subscribe_state(self._on_state),
        ]
        await self.connection.connect()
        if self.poller is not None:
            await self.poller.start()
        logger.info("Realtime session started for user %d", self.principal.user_id)

    async def shutdown(self) -> None:
        """Logout: stop reconnecting, cancel background work, forget session state."""
        if self._closed:
            return
        self._closed = True
        self.mutator.discard_all()
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []

        await self.connection.disconnect()
        if self.poller is not None:
            await self.poller.stop()

        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self.index.clear()
        self.notifications.clear()
        self.badge.clear()
        self.router.reset()
        self.mutator.clear()
        self._focused = None
        await self.api.close()
        logger.info("Realtime session closed for user %d", self.principal.user_id)

    # ---- UI read API ----

    def get_conversations(self) -> list[Conversation]:
        return self.index.conversations()

    def get_notifications(self) -> list[Notification]:
        return self.notifications.active()

    def dismiss(self, notification_id: str) -> bool:
        return self.notifications.dismiss(notification_id) is not None

    def connection_state(self) -> ConnectionState:
        return self.connection.state

    def pending_applications(self) -> int:
        return self.badge.pending_count

    def unread_total(self) -> int:
        return self.index.total_unread()

    @property
    def focused_conversation_id(self) -> ConversationId | None:
        return self._focused

    async def open_conversation(self, conversation_id: str) -> list[Message]:
        """Focus a conversation, clear its unread state and acknowledge it remotely."""
        self._focused = ConversationId(conversation_id)
        acknowledged = read_state_service.open_conversation(
            conversation_id, self.index, self.notifications, self._clock.now(),
        )
        if self.connection.state is ConnectionState.CONNECTED:
            try:
                await self.connection.send(JOIN_CONVERSATION, {"conversationId": conversation_id})
            except TransportError as exc:
                logger.debug("join_conversation not sent: %s", exc.detail)
        await self._acknowledge(acknowledged)
        return acknowledged

    async def close_conversation(self) -> None:
        conversation_id, self._focused = self._focused, None
        if conversation_id is None or self.connection.state is not ConnectionState.CONNECTED:
            return
        try:
            await self.connection.send(LEAVE_CONVERSATION, {"conversationId": conversation_id})
        except TransportError as exc:
            logger.debug("leave_conversation not sent: %s", exc.detail)

    # ---- actions ----

    async def load_history(self, peer_id: int) -> int:
        messages = await self.api.get_messages_between(self.principal.user_id, peer_id)
        return self.index.backfill(messages)

    async def send_message(self, recipient_id: int, content: str) -> Message:
        return await message_service.send_message(
            self.principal, recipient_id, content, self.api, self.router,
        )

    async def load_like(self, publication_id: str) -> like_service.LikeState:
        return await like_service.load_like_state(
            publication_id, self.principal.user_id, self.mutator, self.api,
        )

    async def toggle_like(self, publication_id: str) -> MutationResult[like_service.LikeState]:
        return await like_service.toggle_like(
            publication_id,
            self.principal.user_id,
            self.mutator,
            self.api,
            timeout=self._remote_timeout,
        )

    async def apply_to_company(
        self, company_id: str, company_name: str, company_owner_id: int,
    ) -> MutationResult[bool]:
        return await application_service.apply_to_company(
            self.principal,
            company_id,
            company_name,
            company_owner_id,
            self.mutator,
            self.api,
            self.notifications,
            timeout=self._remote_timeout,
        )

    async def refresh_pending_applications(self) -> int:
        if self.poller is None:
            return self.badge.pending_count
        return await self.poller.refresh_once()

    async def visibility_context(
        self, owner_id: int | None, *, company_id: str | None = None,
    ) -> VisibilityContext:
        return await visibility_service.build_visibility_context(
            self.principal, owner_id, company_id=company_id, relations=self.api,
        )

    # ---- listeners ----

    def _on_frame(self, envelope: WsEnvelope) -> None:
        if envelope.type in IGNORED_TYPES:
            logger.debug("Ignoring %s frame", envelope.type)
            return
        try:
            event = decode_event(envelope)
        except MalformedEvent as exc:
            logger.warning("Dropping %s frame: %s", envelope.type, exc.detail)
            return

        result = self.router.route(event, focused_conversation_id=self._focused)
        if (
            isinstance(event, MessageEvent)
            and result.outcome is RouteOutcome.APPLIED
            and result.conversation_id is not None
            and result.conversation_id == self._focused
        ):
            acknowledged = self.index.mark_conversation_read(result.conversation_id, self._clock.now())
            if acknowledged:
                self._spawn(self._acknowledge(acknowledged))

    def _on_state(self, state: ConnectionState) -> None:
        if state is not ConnectionState.DISCONNECTED:
            return
        if isinstance(self.connection.last_error, AuthExpired) and not self._closed:
            logger.warning("Session token expired; forcing logout")
            self.mutator.discard_all()
            if self._on_auth_expired is not None:
                self._on_auth_expired()

    async def _acknowledge(self, messages: list[Message]) -> None:
        """Live read receipts to the peer when connected, then the persisted ones."""
        if self.connection.state is ConnectionState.CONNECTED:
            for message in messages:
                try:
                    await self.connection.send(MARK_AS_READ, {"messageId": message.id})
                except TransportError as exc:
                    logger.debug("mark_as_read not sent: %s", exc.detail)
                    break
        await read_state_service.acknowledge_remote(messages, self.api)

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)


def create_app(
    principal: Principal,
    token: str,
    *,
    config: Settings | None = None,
    transport_factory: TransportFactory | None = None,
    api: BackendApi | None = None,
    clock: Clock | None = None,
    rng: random.Random | None = None,
    on_auth_expired: AuthExpiredCallback | None = None,
) -> RealtimeApp:
    """Build a ``RealtimeApp`` from settings; adapters may be swapped for fakes."""
    cfg = config or default_settings
    clock = clock or SystemClock()

    connection = ConnectionManager(
        transport_factory or WebSocketsTransportFactory(cfg.WS_URL, open_timeout=cfg.WS_OPEN_TIMEOUT_SECONDS),
        token,
        reconnect=ReconnectPolicy(
            max_retries=cfg.RECONNECT_MAX_RETRIES,
            base_delay=cfg.RECONNECT_BASE_DELAY,
            max_delay=cfg.RECONNECT_MAX_DELAY,
            jitter=cfg.RECONNECT_JITTER,
        ),
        heartbeat=HeartbeatPolicy(
            interval=cfg.WS_HEARTBEAT_SECONDS,
            timeout=cfg.WS_HEARTBEAT_TIMEOUT_SECONDS,
        ),
        rng=rng,
    )
    backend = api or ApiClient(cfg.API_BASE_URL, token, timeout=cfg.HTTP_TIMEOUT_SECONDS)
    badge = ApplicationBadge()

    poller = None
    if sees_pending_applications(principal):
        company_id = str(principal.user_id)

        async def _fetch_applications():
            return await backend.get_company_applications(company_id)

        poller = PendingApplicationsPoller(
            _fetch_applications, badge, interval=cfg.PENDING_APPLICATIONS_POLL_INTERVAL,
        )

    return RealtimeApp(
        principal,
        connection,
        backend,
        index=ConversationIndex(principal.user_id),
        notifications=NotificationQueue(
            max_items=cfg.NOTIFICATION_MAX_ITEMS,
            ttl_seconds=cfg.NOTIFICATION_TTL_SECONDS,
            clock=clock,
        ),
        badge=badge,
        mutator=OptimisticMutator(default_timeout=cfg.REMOTE_CALL_TIMEOUT_SECONDS),
        poller=poller,
        clock=clock,
        remote_timeout=cfg.REMOTE_CALL_TIMEOUT_SECONDS,
        on_auth_expired=on_auth_expired,
    )
