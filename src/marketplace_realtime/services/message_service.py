from __future__ import annotations

from marketplace_realtime.application.dto.principal import Principal
from marketplace_realtime.application.exceptions import ValidationError
from marketplace_realtime.application.policies.permissions import assert_can_message
from marketplace_realtime.application.ports.remote import MessagesApi
from marketplace_realtime.domain.entities.message import Message
from marketplace_realtime.domain.events.inbound import MessageEvent
from marketplace_realtime.services.event_router import EventRouter


async def send_message(
    principal: Principal,
    recipient_id: int,
    content: str,
    api: MessagesApi,
    router: EventRouter,
) -> Message:
    """Create a message on the backend and apply the confirmed copy locally.

    The server echo arriving later over the live connection carries the same
    id and is dropped as a duplicate.
    """
    assert_can_message(principal, recipient_id)
    if not content.strip():
        raise ValidationError("Message content is empty")

    message = await api.create_message(content, principal.user_id, recipient_id)
    router.route(MessageEvent(message=message))
    return message
