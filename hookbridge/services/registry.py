"""Holds the configured services for the lifetime of a loaded config."""

from __future__ import annotations

from typing import Iterable, Iterator

from hookbridge.config import ServiceConfig
from hookbridge.services.base import Service, create_service
from hookbridge.utils.logging import get_logger

log = get_logger(__name__)


class DuplicateServiceError(Exception):
    pass


class ServiceRegistry:
    def __init__(self) -> None:
        self._services: dict[str, Service] = {}

    def load(self, configs: Iterable[ServiceConfig]) -> None:
        """Create and register a service for every config entry."""
        for cfg in configs:
            service = create_service(cfg.type, cfg.id, cfg.user_id, cfg.config)
            self.register(service)

    def register(self, service: Service) -> None:
        if service.service_id in self._services:
            raise DuplicateServiceError(f"Service '{service.service_id}' already registered")
        self._services[service.service_id] = service
        log.info(
            "service_registered",
            service_id=service.service_id,
            service_type=service.service_type,
            user_id=service.user_id,
            rooms=len(service.room_ids()),
        )

    def unregister(self, service_id: str) -> Service | None:
        service = self._services.pop(service_id, None)
        if service is not None:
            log.info("service_unregistered", service_id=service_id)
        return service

    async def close(self) -> None:
        """Unload every service, closing its clients."""
        services = list(self._services.values())
        self._services.clear()
        for service in services:
            try:
                await service.close()
            except Exception:
                log.exception("service_close_error", service_id=service.service_id)

    def get(self, service_id: str) -> Service | None:
        return self._services.get(service_id)

    def services_for_room(self, room_id: str, user_id: str | None = None) -> list[Service]:
        """Services present in ``room_id``, optionally only those sending as ``user_id``."""
        return [
            s for s in self._services.values()
            if room_id in s.room_ids() and (user_id is None or s.user_id == user_id)
        ]

    def __iter__(self) -> Iterator[Service]:
        return iter(list(self._services.values()))

    def __len__(self) -> int:
        return len(self._services)

    def __contains__(self, service_id: object) -> bool:
        return service_id in self._services
