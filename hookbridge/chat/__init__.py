"""Chat clients."""

from hookbridge.chat.base import ChatClient, ChatError
from hookbridge.chat.matrix import MatrixClient

__all__ = [
    "ChatClient",
    "ChatError",
    "MatrixClient",
]
