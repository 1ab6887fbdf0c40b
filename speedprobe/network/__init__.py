"""Latency probing of candidate endpoints.

Exports:
- ``LatencyProbe``: fixed-attempt latency sampling and concurrent ranking.
- ``LatencySample``: one probe outcome (a duration or the error sentinel).
"""

from speedprobe.network.latency import (
    DEFAULT_ERROR_LATENCY,
    DEFAULT_LATENCY_ATTEMPTS,
    LatencyProbe,
    LatencySample,
)

__all__ = [
    "DEFAULT_ERROR_LATENCY",
    "DEFAULT_LATENCY_ATTEMPTS",
    "LatencyProbe",
    "LatencySample",
]
