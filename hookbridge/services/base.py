"""Service interface and the type-tag -> constructor registry."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable

from aiohttp import web

from hookbridge.chat.base import ChatClient
from hookbridge.plugin import Plugin


class UnknownServiceTypeError(Exception):
    pass


class ServiceConfigError(Exception):
    pass


class Service(ABC):
    """A configured integration bound to one chat account."""

    def __init__(self, service_id: str, user_id: str) -> None:
        self._service_id = service_id
        self._user_id = user_id

    @property
    def service_id(self) -> str:
        return self._service_id

    @property
    def user_id(self) -> str:
        """The chat account this service sends as."""
        return self._user_id

    @property
    @abstractmethod
    def service_type(self) -> str: ...

    @abstractmethod
    def room_ids(self) -> list[str]: ...

    def plugin(self, room_id: str) -> Plugin:
        return Plugin()

    async def on_receive_webhook(
        self, request: web.Request, chat: ChatClient
    ) -> web.Response:
        return web.Response(status=404, text="Service does not accept webhooks")

    async def close(self) -> None:
        """Release clients held by the service."""


ServiceFactory = Callable[[str, str, dict[str, Any]], Service]

_SERVICE_TYPES: dict[str, ServiceFactory] = {}


def register_service_type(type_name: str) -> Callable[[ServiceFactory], ServiceFactory]:
    """Register a constructor for services of ``type_name``."""

    def decorator(factory: ServiceFactory) -> ServiceFactory:
        _SERVICE_TYPES[type_name] = factory
        return factory

    return decorator


def service_types() -> list[str]:
    return sorted(_SERVICE_TYPES)


def create_service(
    type_name: str, service_id: str, user_id: str, config: dict[str, Any] | None = None
) -> Service:
    factory = _SERVICE_TYPES.get(type_name)
    if factory is None:
        raise UnknownServiceTypeError(f"Unknown service type '{type_name}'")
    return factory(service_id, user_id, config or {})
