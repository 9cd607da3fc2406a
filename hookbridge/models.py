"""Typed values passed between the webhook, chat and expansion layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class TextMessage:
    """An m.room.message event body."""
    msgtype: str
    body: str
    format: str | None = None
    formatted_body: str | None = None

    def to_content(self) -> dict[str, Any]:
        content: dict[str, Any] = {"msgtype": self.msgtype, "body": self.body}
        if self.format and self.formatted_body is not None:
            content["format"] = self.format
            content["formatted_body"] = self.formatted_body
        return content


@dataclass(frozen=True)
class WebhookEvent:
    event_type: str
    repo: str
    message: TextMessage


@dataclass(frozen=True)
class DeliveryResult:
    room_id: str
    ok: bool
    event_id: str = ""
    error: str = ""


@dataclass
class IncomingMessage:
    """A text message observed in a room by one of our chat accounts."""
    user_id: str  # the account that saw it
    room_id: str
    sender: str
    body: str
    event_id: str = ""
    raw: dict[str, Any] = field(default_factory=dict)
