"""In-memory representation of the endpoint directory."""

import logging
import math
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Iterator, List, Optional

LOGGER = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres between two coordinates."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


@dataclass(frozen=True)
class ClientInfo:
    """The caller as seen by the directory service."""

    ip: str
    lat: float
    lon: float
    isp: str = ""
    ignore_ids: FrozenSet[int] = field(default_factory=frozenset)


@dataclass
class Endpoint:
    """A candidate speed-test server.

    ``distance_km`` is filled in by the catalog and ``latency`` (seconds) by
    the latency probe; both are ``None`` until then.
    """

    id: int
    url: str
    lat: float
    lon: float
    name: str = ""
    country: str = ""
    sponsor: str = ""
    host: str = ""
    distance_km: Optional[float] = None
    latency: Optional[float] = None

    @property
    def latency_url(self) -> str:
        """URL of the lightweight ``latency.txt`` file next to the upload URL."""
        base = self.url.rsplit("/", 1)[0] if "/" in self.url.split("://", 1)[-1] else self.url
        return f"{base}/latency.txt"

    def distance_to(self, lat: float, lon: float) -> float:
        return haversine_km(lat, lon, self.lat, self.lon)

    def __str__(self) -> str:
        label = f"[{self.id}] {self.sponsor} ({self.name}, {self.country})"
        if self.distance_km is not None:
            label += f" {self.distance_km:.2f}km"
        if self.latency is not None:
            label += f" {self.latency * 1000:.1f}ms"
        return label


class EndpointSet:
    """Ordered endpoints with unique ids; iteration follows directory order."""

    def __init__(self, endpoints: Iterable[Endpoint] = ()) -> None:
        self._endpoints: List[Endpoint] = []
        seen = set()
        for endpoint in endpoints:
            if endpoint.id in seen:
                LOGGER.warning("Duplicate server id %s in directory; keeping the first", endpoint.id)
                continue
            seen.add(endpoint.id)
            self._endpoints.append(endpoint)

    def __len__(self) -> int:
        return len(self._endpoints)

    def __iter__(self) -> Iterator[Endpoint]:
        return iter(self._endpoints)

    def __getitem__(self, index: int) -> Endpoint:
        return self._endpoints[index]

    def __repr__(self) -> str:
        return f"EndpointSet({[e.id for e in self._endpoints]})"

    def ids(self) -> List[int]:
        return [e.id for e in self._endpoints]

    def find(self, endpoint_id: int) -> Optional[Endpoint]:
        for endpoint in self._endpoints:
            if endpoint.id == endpoint_id:
                return endpoint
        return None

    def first(self) -> Optional[Endpoint]:
        return self._endpoints[0] if self._endpoints else None

    def without(self, ids: Iterable[int]) -> "EndpointSet":
        excluded = set(ids)
        if not excluded:
            return EndpointSet(self._endpoints)
        return EndpointSet(e for e in self._endpoints if e.id not in excluded)

    def closest(self, lat: float, lon: float, count: int) -> "EndpointSet":
        """Return the ``count`` endpoints nearest to ``(lat, lon)``.

        Sets ``distance_km`` on every member; equal distances keep directory
        order.
        """
        for endpoint in self._endpoints:
            endpoint.distance_km = endpoint.distance_to(lat, lon)
        ranked = sorted(self._endpoints, key=lambda e: e.distance_km)
        return EndpointSet(ranked[: max(0, count)])

    def sorted_by_latency(self) -> "EndpointSet":
        """Stable ascending order by latency; unmeasured endpoints go last."""
        return EndpointSet(
            sorted(
                self._endpoints,
                key=lambda e: (e.latency is None, e.latency if e.latency is not None else 0.0),
            )
        )


__all__ = ["ClientInfo", "Endpoint", "EndpointSet", "haversine_km", "EARTH_RADIUS_KM"]
