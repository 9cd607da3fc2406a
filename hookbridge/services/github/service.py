"""The ``github`` service: webhook notifications and issue expansions."""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Iterable, Mapping

from aiohttp import web
from pydantic import BaseModel, Field, ValidationError

from hookbridge.chat.base import ChatClient
from hookbridge.models import DeliveryResult, TextMessage, WebhookEvent
from hookbridge.plugin import Expansion, Plugin
from hookbridge.services.base import Service, ServiceConfigError, register_service_type
from hookbridge.services.github.client import DEFAULT_API_URL, GitHubClient
from hookbridge.services.github.references import OWNER_REPO_ISSUE_RE, parse_reference
from hookbridge.services.github.webhook import WebhookDecodeError, decode_request
from hookbridge.utils.logging import get_logger

log = get_logger(__name__)

SubscriptionTable = Mapping[str, frozenset[str]]


class GitHubServiceConfig(BaseModel):
    # room_id -> event types, e.g. {"!abc:example.org": ["push", "issue"]}
    rooms: dict[str, list[str]] = Field(default_factory=dict)
    token: str = ""
    webhook_secret: str = ""
    api_url: str = DEFAULT_API_URL
    timeout: float = 10.0


def _freeze(rooms: Mapping[str, Iterable[str]]) -> SubscriptionTable:
    return MappingProxyType({room: frozenset(types) for room, types in rooms.items()})


class GitHubService(Service):
    def __init__(
        self,
        service_id: str,
        user_id: str,
        config: GitHubServiceConfig | None = None,
        client: GitHubClient | None = None,
    ) -> None:
        super().__init__(service_id, user_id)
        config = config or GitHubServiceConfig()
        self._webhook_secret = config.webhook_secret
        self._rooms: SubscriptionTable = _freeze(config.rooms)
        self._client = client or GitHubClient(
            token=config.token, api_url=config.api_url, timeout=config.timeout
        )
        if not self._webhook_secret:
            log.warning(
                "github_webhook_no_secret",
                service_id=service_id,
                msg="Webhook signatures will not be checked. Set webhook_secret in the service config.",
            )

    @property
    def service_type(self) -> str:
        return "github"

    # ------------------------------------------------------------------
    # Subscription table
    # ------------------------------------------------------------------

    @property
    def rooms(self) -> SubscriptionTable:
        return self._rooms

    def room_ids(self) -> list[str]:
        return list(self._rooms)

    def event_types(self, room_id: str) -> frozenset[str]:
        return self._rooms.get(room_id, frozenset())

    def set_rooms(self, rooms: Mapping[str, Iterable[str]]) -> None:
        self._rooms = _freeze(rooms)

    def add_room(self, room_id: str, event_types: Iterable[str]) -> None:
        rooms = dict(self._rooms)
        rooms[room_id] = frozenset(event_types)
        self._rooms = MappingProxyType(rooms)

    def remove_room(self, room_id: str) -> None:
        rooms = dict(self._rooms)
        rooms.pop(room_id, None)
        self._rooms = MappingProxyType(rooms)

    def subscribe(self, room_id: str, event_type: str) -> None:
        self.add_room(room_id, self.event_types(room_id) | {event_type})

    def unsubscribe(self, room_id: str, event_type: str) -> None:
        if room_id in self._rooms:
            self.add_room(room_id, self.event_types(room_id) - {event_type})

    # ------------------------------------------------------------------
    # Expansions
    # ------------------------------------------------------------------

    def plugin(self, room_id: str) -> Plugin:
        return Plugin(expansions=[
            Expansion(regexp=OWNER_REPO_ISSUE_RE, expand=self.expand_issue),
        ])

    async def expand_issue(self, room_id: str, text: str) -> TextMessage | None:
        """Expand the first ``owner/repo#N`` in ``text`` to a link and title."""
        ref = parse_reference(text)
        if ref is None:
            log.info("github_reference_unparseable", room_id=room_id, text=text[:200])
            return None

        resolution = await self._client.resolve(ref)
        if not resolution.ok or resolution.summary is None:
            log.warning(
                "github_issue_fetch_failed",
                owner=ref.owner,
                repo=ref.repo,
                number=ref.number,
                status=resolution.status.value,
                reason=resolution.reason,
            )
            return None

        summary = resolution.summary
        return TextMessage(msgtype="m.notice", body=f"{summary.url} : {summary.title}")

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    async def on_receive_webhook(
        self, request: web.Request, chat: ChatClient
    ) -> web.Response:
        body = await request.read()
        try:
            event = decode_request(request.headers, body, self._webhook_secret)
        except WebhookDecodeError as e:
            log.info(
                "github_webhook_rejected",
                service_id=self.service_id,
                code=e.code,
                reason=e.message,
            )
            return web.Response(status=e.code, text=e.message)

        await self.route(event, chat)
        return web.Response(status=200, text="OK")

    async def route(self, event: WebhookEvent, chat: ChatClient) -> list[DeliveryResult]:
        """Send ``event`` to every room subscribed to its type.

        A failed send is logged and recorded; the other rooms are still tried.
        """
        rooms = self._rooms
        results: list[DeliveryResult] = []
        for room_id, event_types in rooms.items():
            if event.event_type not in event_types:
                continue
            log.info(
                "sending_notification",
                type=event.event_type,
                repo=event.repo,
                msg=event.message.body,
                room_id=room_id,
            )
            try:
                event_id = await chat.send_message_event(
                    room_id, "m.room.message", event.message.to_content()
                )
            except Exception as e:
                log.warning(
                    "notification_failed",
                    room_id=room_id,
                    error=str(e),
                    exc_info=True,
                )
                results.append(DeliveryResult(room_id=room_id, ok=False, error=str(e)))
                continue
            results.append(DeliveryResult(room_id=room_id, ok=True, event_id=event_id))
        return results

    async def close(self) -> None:
        await self._client.close()


@register_service_type("github")
def create_github_service(
    service_id: str, user_id: str, config: dict[str, Any]
) -> GitHubService:
    try:
        parsed = GitHubServiceConfig.model_validate(config)
    except ValidationError as e:
        raise ServiceConfigError(f"Invalid config for github service '{service_id}': {e}") from e
    return GitHubService(service_id, user_id, parsed)
