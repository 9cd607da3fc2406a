"""hookbridge entry point: wires everything together and runs the bridge."""

from __future__ import annotations

import asyncio
import signal
import sys

import click

from hookbridge import __version__
from hookbridge.chat.base import ChatClient
from hookbridge.chat.matrix import MatrixClient
from hookbridge.config import Settings, load_settings
from hookbridge.core.bus import EventBus, MessageIncoming
from hookbridge.core.dispatcher import ExpansionDispatcher
from hookbridge.services import ServiceRegistry
from hookbridge.utils.logging import get_logger, setup_logging
from hookbridge.webhooks.server import WebhookServer

log = get_logger(__name__)


class HookBridge:
    """Main application orchestrator."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

        self.bus = EventBus()
        self.clients: dict[str, ChatClient] = {
            c.user_id: MatrixClient(c, self.bus) for c in settings.clients
        }
        self.registry = ServiceRegistry()
        self.dispatcher = ExpansionDispatcher(self.registry, self.clients)
        self.server = WebhookServer(settings.webhooks, self.registry, self.clients)

    async def start(self) -> None:
        log.info("hookbridge_starting", version=__version__)

        self.registry.load(self.settings.services)
        for service in self.registry:
            if service.user_id not in self.clients:
                log.warning(
                    "service_without_client",
                    service_id=service.service_id,
                    user_id=service.user_id,
                )

        self.bus.subscribe(MessageIncoming, self.dispatcher.handle)

        for client in self.clients.values():
            await client.start()

        await self.bus.start()
        await self.server.start()

        log.info("hookbridge_ready", services=len(self.registry), clients=len(self.clients))

    async def stop(self) -> None:
        log.info("hookbridge_stopping")
        await self.server.stop()
        await self.bus.stop()
        for client in self.clients.values():
            try:
                await client.stop()
            except Exception:
                log.exception("client_stop_error", user_id=client.user_id)
        await self.registry.close()
        log.info("hookbridge_stopped")


async def run(settings: Settings) -> None:
    app = HookBridge(settings)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        log.info("shutdown_signal")
        stop_event.set()

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _signal_handler)

    await app.start()

    try:
        if sys.platform == "win32":
            while not stop_event.is_set():
                await asyncio.sleep(1)
        else:
            await stop_event.wait()
    except KeyboardInterrupt:
        pass
    finally:
        await app.stop()


@click.command()
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
def cli(config_path: str | None, log_level: str | None) -> None:
    """Start the GitHub to Matrix bridge."""
    settings = load_settings(config_path)
    if log_level:
        settings.log_level = log_level
    setup_logging(level=settings.log_level, json_output=settings.log_json)
    asyncio.run(run(settings))


if __name__ == "__main__":
    cli()
