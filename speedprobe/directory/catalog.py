"""Catalog of candidate endpoints backed by the remote directory service.

Every fetch re-issues its network requests; callers that need the same set
twice should keep the returned ``EndpointSet``.
"""

import logging
from typing import Callable, Optional

from speedprobe.api.response import read_structured
from speedprobe.api.transport import Transport
from speedprobe.config import ClientConfig
from speedprobe.directory.models import ClientInfo, Endpoint, EndpointSet
from speedprobe.directory.schemas import CONFIG_SCHEMA, SERVERS_SCHEMA
from speedprobe.logging_utils import perf

LOGGER = logging.getLogger(__name__)

ClosestStrategy = Callable[[EndpointSet, ClientInfo, int], EndpointSet]


class DistanceStrategy:
    """Rank by great-circle distance from the client's reported location."""

    def __call__(self, endpoints: EndpointSet, client: ClientInfo, count: int) -> EndpointSet:
        return endpoints.closest(client.lat, client.lon, count)


class DirectoryOrderStrategy:
    """Trust the directory's own ranking and keep its first ``count`` entries."""

    def __call__(self, endpoints: EndpointSet, client: ClientInfo, count: int) -> EndpointSet:
        return EndpointSet(list(endpoints)[: max(0, count)])


def find(endpoints: EndpointSet, endpoint_id: int) -> Optional[Endpoint]:
    """Exact lookup of ``endpoint_id`` within a fetched set."""
    return endpoints.find(endpoint_id)


class EndpointCatalog:
    """Fetches the endpoint directory and derives candidate subsets."""

    def __init__(
        self,
        transport: Transport,
        config: ClientConfig,
        strategy: Optional[ClosestStrategy] = None,
    ) -> None:
        self._transport = transport
        self._config = config
        self._strategy: ClosestStrategy = strategy or DistanceStrategy()

    @perf("directory.client_info", tags={"component": "directory"})
    def client_info(self) -> ClientInfo:
        """Fetch the client configuration document."""
        envelope = self._transport.get(self._config.config_url)
        envelope.raise_for_status()
        info = read_structured(envelope, CONFIG_SCHEMA)
        LOGGER.info("Client %s (%s) at lat=%.4f lon=%.4f", info.ip, info.isp, info.lat, info.lon)
        return info

    @perf("directory.all_endpoints", tags={"component": "directory"})
    def all_endpoints(self) -> EndpointSet:
        """Fetch and decode the full server list, minus configured exclusions."""
        envelope = self._transport.get(self._config.servers_url)
        envelope.raise_for_status()
        endpoints: EndpointSet = read_structured(envelope, SERVERS_SCHEMA)
        if self._config.excluded_ids:
            endpoints = endpoints.without(self._config.excluded_ids)
        LOGGER.info("Loaded %d servers from directory", len(endpoints))
        return endpoints

    def closest_endpoints(self) -> EndpointSet:
        """Fetch the directory and keep the candidates nearest to this client."""
        info = self.client_info()
        endpoints = self.all_endpoints()
        if info.ignore_ids:
            endpoints = endpoints.without(info.ignore_ids)
        subset = self._strategy(endpoints, info, self._config.closest_count)
        LOGGER.info(
            "Closest %d of %d servers: %s",
            len(subset),
            len(endpoints),
            subset.ids(),
        )
        return subset

    def find(self, endpoints: EndpointSet, endpoint_id: int) -> Optional[Endpoint]:
        return find(endpoints, endpoint_id)


__all__ = [
    "ClosestStrategy",
    "DistanceStrategy",
    "DirectoryOrderStrategy",
    "EndpointCatalog",
    "find",
]
