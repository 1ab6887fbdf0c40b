"""Run-scoped logging for speedprobe.

One selection run writes one log file, `<log_dir>/<app_name>-<run_id>.log`.
Latency probes run on worker threads, so every line also names its thread;
that keeps the interleaved per-server lines of a ranking pass readable.

Timing lines all share one shape,
`event=perf name=<span> duration_ms=<ms> success=<bool> tags={...}`, and the
spans emitted by the package are:

- `directory.client_info` and `directory.all_endpoints`: directory fetches.
- `probe.endpoint` (DEBUG): one server's attempts, tagged with its id.
- `probe.measure_latencies`: the whole concurrent ranking pass.
- `jobs.select_server` and `jobs.selection_total`: the selection itself.

`perf` wraps a function; `perf_span` wraps a block.
"""

import functools
import logging
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from speedprobe.config import AppConfig

DEFAULT_LOG_FORMAT = (
    "%(asctime)s %(levelname)s %(name)s [run=%(run_id)s thread=%(threadName)s] %(message)s"
)
NOISY_LOGGERS = ("urllib3", "requests")
PERF_LINE = "event=perf name=%s duration_ms=%.3f success=%s tags=%s"


class _RunContextFilter(logging.Filter):
    """Inject the current run identifier into every log record."""

    def __init__(self, run_id: str) -> None:
        super().__init__()
        self._run_id = run_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = self._run_id
        return True


def _sanitize_run_id(run_id: str) -> str:
    """Convert a run identifier into a filesystem-friendly token."""
    return "".join(ch if ch.isalnum() or ch in ("-", "_") else "-" for ch in run_id)


def generate_run_id() -> str:
    """Return a default run identifier based on the current UTC timestamp."""
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def configure_logging(
    config: AppConfig,
    run_id: Optional[str] = None,
    include_console: bool = True,
    fmt: str = DEFAULT_LOG_FORMAT,
) -> Path:
    """Route this run's records to its own log file (and optionally stdout).

    Existing root handlers are closed and replaced, so calling this twice in
    one process (e.g. after a configuration fallback) never writes one run's
    lines into another run's file. The HTTP stack loggers are held at INFO or
    above even when the run itself logs at DEBUG, so per-probe lines are not
    buried under connection-pool chatter.

    Returns:
        Path of the log file written for this run.
    """
    resolved_run_id = run_id or generate_run_id()
    safe_run_id = _sanitize_run_id(resolved_run_id)

    log_dir = config.log_directory
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"{config.app_name}-{safe_run_id}.log"

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    handlers = [logging.FileHandler(log_path, encoding="utf-8")]
    if include_console:
        handlers.append(logging.StreamHandler(sys.stdout))

    for handler in handlers:
        handler.setFormatter(logging.Formatter(fmt))
        handler.addFilter(_RunContextFilter(resolved_run_id))
        root_logger.addHandler(handler)

    level = getattr(logging, config.log_level.upper(), logging.INFO)
    root_logger.setLevel(level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))

    return log_path


def _format_tags(tags: Optional[Mapping[str, Any]]) -> str:
    if not tags:
        return "{}"
    items = ", ".join(f"{k}={tags[k]!r}" for k in sorted(tags))
    return "{" + items + "}"


def perf(
    name: Optional[str] = None,
    *,
    tags: Optional[Mapping[str, Any]] = None,
    level: int = logging.INFO,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator that logs execution time of a function.

    Args:
        name: Optional span name; defaults to ``<module>.<qualname>``.
        tags: Optional mapping of extra metadata included in the line.
        level: Logging level for the perf line.
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        span_name = name or f"{func.__module__}.{func.__qualname__}"
        logger = logging.getLogger(func.__module__)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start_ns = time.monotonic_ns()
            success = False
            try:
                result = func(*args, **kwargs)
                success = True
                return result
            finally:
                duration_ms = (time.monotonic_ns() - start_ns) / 1_000_000.0
                logger.log(
                    level,
                    PERF_LINE,
                    span_name,
                    duration_ms,
                    str(success).lower(),
                    _format_tags(tags),
                )

        return wrapper

    return decorator


class perf_span:
    """Context manager to time an arbitrary code block and log its duration.

    Example:
        with perf_span("probe.endpoint", tags={"server": 1234}):
            probe.measure_latency(endpoint, 4, 3600.0)
    """

    def __init__(
        self,
        name: str,
        *,
        tags: Optional[Mapping[str, Any]] = None,
        level: int = logging.INFO,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._name = name
        self._tags = tags or {}
        self._level = level
        self._logger = logger or logging.getLogger(__name__)
        self._start_ns: Optional[int] = None

    def __enter__(self) -> "perf_span":
        self._start_ns = time.monotonic_ns()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        end_ns = time.monotonic_ns()
        start_ns = self._start_ns or end_ns
        self._logger.log(
            self._level,
            PERF_LINE,
            self._name,
            (end_ns - start_ns) / 1_000_000.0,
            str(exc_type is None).lower(),
            _format_tags(self._tags),
        )
        return False


__all__ = [
    "configure_logging",
    "generate_run_id",
    "DEFAULT_LOG_FORMAT",
    "NOISY_LOGGERS",
    "perf",
    "perf_span",
]
