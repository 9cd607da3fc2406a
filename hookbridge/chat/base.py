"""Abstract chat client base class."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class ChatError(Exception):
    """A chat API call failed."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ChatClient(ABC):
    @property
    @abstractmethod
    def user_id(self) -> str: ...

    @abstractmethod
    async def start(self) -> None: ...

    @abstractmethod
    async def stop(self) -> None: ...

    @abstractmethod
    async def send_message_event(
        self, room_id: str, event_type: str, content: dict[str, Any]
    ) -> str:
        """Send an event to a room and return its event id.

        Raises ChatError on failure.
        """
        ...
