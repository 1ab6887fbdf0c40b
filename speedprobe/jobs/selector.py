"""Selector orchestrating the endpoint catalog and the latency probe."""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from speedprobe.api.transport import Transport
from speedprobe.config import AppConfig, ClientConfig
from speedprobe.directory.catalog import ClosestStrategy, EndpointCatalog
from speedprobe.directory.models import Endpoint
from speedprobe.errors import (
    ConfigurationError,
    DecodeError,
    EmptyCandidateSet,
    SelectionError,
    TransportError,
)
from speedprobe.logging_utils import perf, perf_span
from speedprobe.network.latency import LatencyProbe

LOGGER = logging.getLogger(__name__)


@contextmanager
def _directory_stage() -> Iterator[None]:
    """Re-raise directory fetch and decode failures as fatal selection errors."""
    try:
        yield
    except TransportError as exc:
        raise SelectionError(f"Failed to load server list: {exc}", stage="directory") from exc
    except DecodeError as exc:
        raise SelectionError(f"Failed to decode directory: {exc}", stage="decode") from exc


@perf("jobs.select_server", tags={"component": "jobs"})
def select_server(
    config: ClientConfig,
    catalog: EndpointCatalog,
    probe: LatencyProbe,
) -> Endpoint:
    """Return the endpoint to use for the throughput test.

    With ``config.server_id`` set, that server is returned after a single
    latency measurement whatever the result. Otherwise the closest servers are
    probed and the fastest one wins.

    Raises:
        SelectionError: The directory could not be fetched (``directory``) or
            decoded (``decode``).
        ConfigurationError: ``config.server_id`` is not in the directory.
        EmptyCandidateSet: No candidate servers are left to probe.
    """
    if config.server_id != 0:
        with _directory_stage():
            endpoints = catalog.all_endpoints()
        selected = catalog.find(endpoints, config.server_id)
        if selected is None:
            if config.server_id in config.excluded_ids:
                raise ConfigurationError(
                    f"Server {config.server_id} is requested but also listed in SPEEDPROBE_EXCLUDE"
                )
            raise ConfigurationError(f"Server not found: {config.server_id}")
        probe.measure_latency(selected, config.latency_attempts, config.error_latency)
        LOGGER.info("Using requested server %s", selected)
        return selected

    with _directory_stage():
        candidates = catalog.closest_endpoints()
    if not len(candidates):
        raise EmptyCandidateSet("No candidate servers available")

    ranked = probe.measure_latencies(candidates, config.latency_attempts, config.error_latency)
    selected = ranked.first()
    if selected is None:
        raise EmptyCandidateSet("No candidate servers available")
    if selected.latency is not None and selected.latency >= config.error_latency:
        LOGGER.warning("Every candidate server failed its latency probe; using %s", selected)
    else:
        LOGGER.info("Selected server %s", selected)
    return selected


def run_selection(
    app_config: AppConfig,
    *,
    transport: Optional[Transport] = None,
    strategy: Optional[ClosestStrategy] = None,
) -> Endpoint:
    """Wire transport, catalog and probe together and select a server."""
    client_config = app_config.client
    transport = transport or Transport(client_config)
    with transport:
        catalog = EndpointCatalog(transport, client_config, strategy=strategy)
        probe = LatencyProbe(transport, max_workers=client_config.max_workers)
        mode = "explicit" if client_config.server_id else "automatic"
        with perf_span("jobs.selection_total", tags={"mode": mode}, logger=LOGGER):
            return select_server(client_config, catalog, probe)


__all__ = ["run_selection", "select_server"]
