"""Webhook HTTP server using aiohttp."""

from __future__ import annotations

from typing import Mapping

from aiohttp import web

from hookbridge.chat.base import ChatClient
from hookbridge.config import WebhooksConfig
from hookbridge.services.registry import ServiceRegistry
from hookbridge.utils.logging import get_logger

log = get_logger(__name__)


class WebhookServer:
    """Receives incoming webhooks and hands them to the owning service."""

    def __init__(
        self,
        config: WebhooksConfig,
        registry: ServiceRegistry,
        clients: Mapping[str, ChatClient],
    ) -> None:
        self._config = config
        self._registry = registry
        self._clients = clients
        self._runner: web.AppRunner | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        app = self._build_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._config.bind, self._config.port)
        await site.start()
        log.info(
            "webhook_server_started",
            bind=self._config.bind,
            port=self._config.port,
            base_path=self._base_path,
        )

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        log.info("webhook_server_stopped")

    # ------------------------------------------------------------------
    # App construction
    # ------------------------------------------------------------------

    @property
    def _base_path(self) -> str:
        path = self._config.base_path.rstrip("/")
        return path if path.startswith("/") else f"/{path}"

    def _build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post(f"{self._base_path}/{{service_id}}", self._handle_webhook)
        return app

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    async def _handle_webhook(self, request: web.Request) -> web.Response:
        service_id = request.match_info["service_id"]
        service = self._registry.get(service_id)
        if service is None:
            log.info("webhook_unknown_service", service_id=service_id)
            return web.Response(status=404, text="Not found")

        client = self._clients.get(service.user_id)
        if client is None:
            log.error(
                "webhook_no_client",
                service_id=service_id,
                user_id=service.user_id,
            )
            return web.Response(status=500, text="No client for service")

        log.info(
            "webhook_received",
            service_id=service_id,
            service_type=service.service_type,
        )
        return await service.on_receive_webhook(request, client)
