"""Endpoint directory: models, document schemas and the catalog.

Exports:
- ``Endpoint`` / ``EndpointSet`` / ``ClientInfo``: decoded directory data.
- ``CONFIG_SCHEMA`` / ``SERVERS_SCHEMA``: decoders for the directory documents.
- ``EndpointCatalog``: fetches the directory and filters candidates.
"""

from speedprobe.directory.catalog import (
    ClosestStrategy,
    DirectoryOrderStrategy,
    DistanceStrategy,
    EndpointCatalog,
    find,
)
from speedprobe.directory.models import ClientInfo, Endpoint, EndpointSet, haversine_km
from speedprobe.directory.schemas import (
    CONFIG_SCHEMA,
    SERVERS_SCHEMA,
    parse_client_config,
    parse_server_list,
    serialize_endpoints,
)

__all__ = [
    "ClientInfo",
    "Endpoint",
    "EndpointSet",
    "haversine_km",
    "CONFIG_SCHEMA",
    "SERVERS_SCHEMA",
    "parse_client_config",
    "parse_server_list",
    "serialize_endpoints",
    "ClosestStrategy",
    "DirectoryOrderStrategy",
    "DistanceStrategy",
    "EndpointCatalog",
    "find",
]
