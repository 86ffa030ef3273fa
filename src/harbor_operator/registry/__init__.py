"""Harbor registry clients and pull secret helpers."""

from harbor_operator.registry.legacy import RegistryV1
from harbor_operator.registry.server import (
    AccessCred,
    RegistryServer,
    build_registry_server,
    registry_host,
)
from harbor_operator.registry.v2 import RegistryV2

__all__ = [
    "AccessCred",
    "RegistryServer",
    "RegistryV1",
    "RegistryV2",
    "build_registry_server",
    "registry_host",
]
