"""Latency sampling and ranking of endpoints.

Each endpoint receives exactly ``attempts`` GETs of its ``latency.txt`` file.
A failed probe is recorded as the error sentinel instead of aborting, so every
endpoint ends up with the same number of samples and the results stay
comparable. An endpoint's latency is the mean of its samples.

Endpoints are probed concurrently on a bounded thread pool; the attempts for
one endpoint run sequentially inside its own task, and only that task writes
the endpoint's ``latency`` field.
"""

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, List, Optional

from speedprobe.api.transport import Transport
from speedprobe.config import DEFAULT_ERROR_LATENCY, DEFAULT_LATENCY_ATTEMPTS
from speedprobe.directory.models import Endpoint, EndpointSet
from speedprobe.errors import TransportError
from speedprobe.logging_utils import perf_span

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class LatencySample:
    """Result of one probe attempt.

    Attributes:
        endpoint_id: Endpoint the probe targeted.
        attempt: Zero-based attempt index.
        duration: Round-trip seconds, or the error sentinel when ``ok`` is False.
        ok: Whether the probe completed with a 2xx response.
        error: Error text for a failed probe.
    """

    endpoint_id: int
    attempt: int
    duration: float
    ok: bool
    error: Optional[str] = None


class LatencyProbe:
    """Measures and ranks endpoint latency over a shared transport."""

    def __init__(
        self,
        transport: Transport,
        *,
        max_workers: int = 8,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._transport = transport
        self._max_workers = max(1, int(max_workers))
        self._clock = clock

    def _probe_once(self, endpoint: Endpoint, attempt: int, error_latency: float) -> LatencySample:
        start = self._clock()
        try:
            envelope = self._transport.get(endpoint.latency_url)
            envelope.raise_for_status()
            envelope.read_content()
        except TransportError as exc:
            LOGGER.debug(
                "Latency probe failed server=%s attempt=%d: %s", endpoint.id, attempt, exc
            )
            return LatencySample(endpoint.id, attempt, error_latency, False, str(exc))
        return LatencySample(endpoint.id, attempt, self._clock() - start, True)

    def sample(self, endpoint: Endpoint, attempts: int, error_latency: float) -> List[LatencySample]:
        """Run ``attempts`` sequential probes against ``endpoint``."""
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        return [self._probe_once(endpoint, i, error_latency) for i in range(attempts)]

    def measure_latency(
        self,
        endpoint: Endpoint,
        attempts: int = DEFAULT_LATENCY_ATTEMPTS,
        error_latency: float = DEFAULT_ERROR_LATENCY,
    ) -> float:
        """Probe ``endpoint`` and store the mean latency on it.

        Returns the latency in seconds; exactly ``error_latency`` when every
        attempt failed.
        """
        with perf_span(
            "probe.endpoint",
            tags={"server": endpoint.id, "attempts": attempts},
            level=logging.DEBUG,
            logger=LOGGER,
        ):
            samples = self.sample(endpoint, attempts, error_latency)
        failures = sum(1 for s in samples if not s.ok)
        if failures == len(samples):
            latency = error_latency
        else:
            latency = math.fsum(s.duration for s in samples) / len(samples)
        endpoint.latency = latency
        LOGGER.debug(
            "Server %s latency=%.3fms failures=%d/%d",
            endpoint.id,
            latency * 1000,
            failures,
            len(samples),
        )
        return latency

    def measure_latencies(
        self,
        endpoints: EndpointSet,
        attempts: int = DEFAULT_LATENCY_ATTEMPTS,
        error_latency: float = DEFAULT_ERROR_LATENCY,
    ) -> EndpointSet:
        """Probe every endpoint concurrently and return them fastest first.

        Equal latencies keep their original order.
        """
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        if not len(endpoints):
            return EndpointSet()

        workers = min(self._max_workers, len(endpoints))
        with perf_span(
            "probe.measure_latencies",
            tags={"servers": len(endpoints), "attempts": attempts, "workers": workers},
            logger=LOGGER,
        ):
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {
                    executor.submit(self.measure_latency, endpoint, attempts, error_latency): endpoint
                    for endpoint in endpoints
                }
                for fut in as_completed(futures):
                    endpoint = futures[fut]
                    try:
                        fut.result()
                    except Exception as exc:  # noqa: BLE001
                        LOGGER.warning("Latency worker for server %s crashed: %s", endpoint.id, exc)
                        endpoint.latency = error_latency

        ranked = endpoints.sorted_by_latency()
        LOGGER.info(
            "Latency ranking: %s",
            ", ".join(f"{e.id}={e.latency * 1000:.1f}ms" for e in ranked),
        )
        return ranked


__all__ = [
    "DEFAULT_ERROR_LATENCY",
    "DEFAULT_LATENCY_ATTEMPTS",
    "LatencyProbe",
    "LatencySample",
]
