"""Services and the registry that holds them.

Importing this package registers the built-in service types.
"""

from hookbridge.services.base import (
    Service,
    ServiceConfigError,
    UnknownServiceTypeError,
    create_service,
    register_service_type,
    service_types,
)
from hookbridge.services.registry import DuplicateServiceError, ServiceRegistry
from hookbridge.services import github  # noqa: F401  (registers "github")

__all__ = [
    "Service",
    "ServiceConfigError",
    "UnknownServiceTypeError",
    "DuplicateServiceError",
    "ServiceRegistry",
    "create_service",
    "register_service_type",
    "service_types",
]
