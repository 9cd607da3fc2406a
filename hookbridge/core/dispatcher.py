"""Runs service expansions over text observed in rooms."""

from __future__ import annotations

from typing import Mapping

from hookbridge.chat.base import ChatClient, ChatError
from hookbridge.core.bus import Event
from hookbridge.models import IncomingMessage
from hookbridge.plugin import run_expansions
from hookbridge.services.registry import ServiceRegistry
from hookbridge.utils.logging import get_logger

log = get_logger(__name__)


class ExpansionDispatcher:
    """Bus handler for MESSAGE_INCOMING events."""

    def __init__(self, registry: ServiceRegistry, clients: Mapping[str, ChatClient]) -> None:
        self._registry = registry
        self._clients = clients

    async def handle(self, event: Event) -> None:
        msg: IncomingMessage | None = getattr(event, "message", None)
        if msg is None:
            return

        client = self._clients.get(msg.user_id)
        if client is None:
            log.warning("dispatch_no_client", user_id=msg.user_id)
            return

        services = self._registry.services_for_room(msg.room_id, msg.user_id)
        if not services:
            return

        plugins = [s.plugin(msg.room_id) for s in services]
        responses = await run_expansions(plugins, msg.room_id, msg.body)
        for response in responses:
            try:
                await client.send_message_event(
                    msg.room_id, "m.room.message", response.to_content()
                )
            except ChatError as e:
                log.warning("expansion_send_failed", room_id=msg.room_id, error=str(e))
