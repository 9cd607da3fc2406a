"""Matrix client-server API client over httpx."""

from __future__ import annotations

import asyncio
from typing import Any
from urllib.parse import quote
from uuid import uuid4

import httpx

from hookbridge.chat.base import ChatClient, ChatError
from hookbridge.config import ClientConfig
from hookbridge.core.bus import EventBus, MessageIncoming
from hookbridge.models import IncomingMessage
from hookbridge.utils.logging import get_logger

log = get_logger(__name__)

_API = "/_matrix/client/v3"


class MatrixClient(ChatClient):
    def __init__(
        self,
        config: ClientConfig,
        bus: EventBus | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._bus = bus
        self._running = False
        self._sync_task: asyncio.Task[None] | None = None
        self._next_batch: str | None = None
        self._http_client = httpx.AsyncClient(
            base_url=config.homeserver_url.rstrip("/"),
            # Long-poll /sync must outlive its own server-side timeout
            timeout=config.sync_timeout_ms / 1000 + 30,
            headers={"Authorization": f"Bearer {config.access_token}"},
            transport=transport,
        )

    @property
    def user_id(self) -> str:
        return self._config.user_id

    async def start(self) -> None:
        self._running = True
        if self._config.sync and self._bus is not None:
            self._sync_task = asyncio.create_task(
                self._sync_loop(), name=f"matrix-sync-{self.user_id}"
            )
        log.info("matrix_client_started", user_id=self.user_id, sync=self._sync_task is not None)

    async def stop(self) -> None:
        self._running = False
        if self._sync_task:
            self._sync_task.cancel()
            try:
                await self._sync_task
            except asyncio.CancelledError:
                pass
            self._sync_task = None
        await self._http_client.aclose()
        log.info("matrix_client_stopped", user_id=self.user_id)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send_message_event(
        self, room_id: str, event_type: str, content: dict[str, Any]
    ) -> str:
        txn_id = uuid4().hex
        path = (
            f"{_API}/rooms/{quote(room_id, safe='')}"
            f"/send/{quote(event_type, safe='')}/{txn_id}"
        )
        try:
            resp = await self._http_client.put(path, json=content)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ChatError(
                f"send to {room_id} failed: {e.response.status_code} {e.response.text[:200]}",
                status=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise ChatError(f"send to {room_id} failed: {e}") from e
        try:
            body = resp.json()
        except ValueError as e:
            raise ChatError(
                f"send to {room_id}: unreadable response", status=resp.status_code
            ) from e
        event_id = body.get("event_id", "") if isinstance(body, dict) else ""
        return event_id if isinstance(event_id, str) else ""

    # ------------------------------------------------------------------
    # Syncing
    # ------------------------------------------------------------------

    async def _sync_loop(self) -> None:
        """Long-poll /sync and publish observed room text to the bus."""
        while self._running:
            try:
                await self._sync_once()
            except httpx.ConnectError:
                log.warning("matrix_homeserver_unavailable", user_id=self.user_id)
                await asyncio.sleep(10)
            except Exception:
                log.exception("matrix_sync_error", user_id=self.user_id)
                await asyncio.sleep(5)

    async def _sync_once(self) -> None:
        params: dict[str, Any] = {"timeout": self._config.sync_timeout_ms}
        if self._next_batch:
            params["since"] = self._next_batch
        else:
            # First sync: only track the stream position, don't replay history
            params["timeout"] = 0
            params["filter"] = '{"room":{"timeline":{"limit":1}}}'

        resp = await self._http_client.get(f"{_API}/sync", params=params)
        resp.raise_for_status()
        body = resp.json()

        first_sync = self._next_batch is None
        self._next_batch = body.get("next_batch", self._next_batch)
        if first_sync:
            return

        rooms = body.get("rooms", {}).get("join", {})
        for room_id, room in rooms.items():
            for event in room.get("timeline", {}).get("events", []):
                await self._process_event(room_id, event)

    async def _process_event(self, room_id: str, event: dict[str, Any]) -> None:
        if event.get("type") != "m.room.message":
            return
        sender = event.get("sender", "")
        # Ignore own messages; notices are bot output and never expanded
        if sender == self.user_id:
            return
        content = event.get("content", {})
        if content.get("msgtype") not in ("m.text", "m.emote"):
            return
        body = content.get("body", "")
        if not body:
            return

        assert self._bus is not None
        await self._bus.publish(MessageIncoming(message=IncomingMessage(
            user_id=self.user_id,
            room_id=room_id,
            sender=sender,
            body=body,
            event_id=event.get("event_id", ""),
            raw=event,
        )))
