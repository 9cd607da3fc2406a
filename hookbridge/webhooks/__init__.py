"""Inbound webhook HTTP boundary."""

from hookbridge.webhooks.server import WebhookServer

__all__ = ["WebhookServer"]
