"""Configuration utilities for speedprobe runs.

This module reads environment variables (optionally from an `.env` file) and
produces an application configuration object consumed across the project.

Supported keys are `LOG_DIR`, `LOG_LEVEL`, `APP_NAME` and the
`SPEEDPROBE_*` family (timeout, source address, TLS preference, explicit
server id, latency attempts, error latency, closest count, worker count,
directory URLs and excluded ids).

Usage example:

    from speedprobe.config import load_config

    config = load_config()
    with Transport(config.client) as transport:
        ...
"""

import ipaddress
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, Mapping, MutableMapping, Optional

from speedprobe.errors import ConfigurationError

REPO_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_ENV_FILE = REPO_ROOT / ".env"

DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_LATENCY_ATTEMPTS = 4
DEFAULT_ERROR_LATENCY = 3600.0
DEFAULT_CLOSEST_COUNT = 5
DEFAULT_MAX_WORKERS = 8
DEFAULT_CONFIG_URL = "://www.speedtest.net/speedtest-config.php"
DEFAULT_SERVERS_URL = "://www.speedtest.net/speedtest-servers-static.php"


def _load_env_file(path: Path) -> Dict[str, str]:
    """Parse a dotenv-style file into a dictionary."""
    if not path.exists():
        return {}

    data: Dict[str, str] = {}
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        data[key.strip()] = value.strip().strip("\"'")
    return data


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None or not value.strip():
        return default
    lowered = value.strip().lower()
    if lowered in {"true", "t", "1", "yes", "y", "on"}:
        return True
    if lowered in {"false", "f", "0", "no", "n", "off"}:
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def _parse_ids(value: Optional[str]) -> FrozenSet[int]:
    """Parse a comma-separated id list such as ``"1234, 5678"``."""
    if not value:
        return frozenset()
    ids = set()
    for token in value.split(","):
        token = token.strip()
        if not token:
            continue
        try:
            ids.add(int(token))
        except ValueError as exc:
            raise ValueError(f"Invalid server id in exclude list: {token!r}") from exc
    return frozenset(ids)


@dataclass(frozen=True)
class ClientConfig:
    """Inputs for endpoint discovery and selection.

    Attributes:
        timeout: Per-request timeout in seconds.
        source_address: Optional local IP to bind outbound connections to.
        secure: Complete scheme-relative URLs with ``https`` instead of ``http``.
        server_id: Explicit endpoint id; ``0`` selects automatically.
        latency_attempts: Probes issued per endpoint.
        error_latency: Sentinel latency (seconds) recorded for a failed probe.
        closest_count: Size of the geography-filtered candidate subset.
        max_workers: Upper bound on concurrently probed endpoints.
        config_url: Directory URL for the client configuration document.
        servers_url: Directory URL for the endpoint list document.
        excluded_ids: Endpoint ids never considered for selection.
    """

    timeout: float = DEFAULT_TIMEOUT_SECONDS
    source_address: Optional[str] = None
    secure: bool = False
    server_id: int = 0
    latency_attempts: int = DEFAULT_LATENCY_ATTEMPTS
    error_latency: float = DEFAULT_ERROR_LATENCY
    closest_count: int = DEFAULT_CLOSEST_COUNT
    max_workers: int = DEFAULT_MAX_WORKERS
    config_url: str = DEFAULT_CONFIG_URL
    servers_url: str = DEFAULT_SERVERS_URL
    excluded_ids: FrozenSet[int] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if self.source_address:
            try:
                ipaddress.ip_address(self.source_address)
            except ValueError as exc:
                raise ConfigurationError(
                    f"Invalid source IP: {self.source_address}", stage="config"
                ) from exc
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.latency_attempts < 1:
            raise ValueError("latency_attempts must be >= 1")
        if self.closest_count < 1:
            raise ValueError("closest_count must be >= 1")
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        if self.server_id < 0:
            raise ValueError("server_id must not be negative")


@dataclass(frozen=True)
class AppConfig:
    """Application-level configuration values."""

    log_directory: Path
    log_level: str
    app_name: str = "speedprobe"
    client: ClientConfig = field(default_factory=ClientConfig)


def _merge_envs(dotenv_values: Mapping[str, str], env: MutableMapping[str, str]) -> Dict[str, str]:
    """Merge dotenv values with the current environment, preferring os.environ."""
    merged = dict(dotenv_values)
    merged.update(env)  # os.environ wins
    return merged


def _client_config_from(values: Mapping[str, str]) -> ClientConfig:
    source = (values.get("SPEEDPROBE_SOURCE") or "").strip() or None
    return ClientConfig(
        timeout=float(values.get("SPEEDPROBE_TIMEOUT", DEFAULT_TIMEOUT_SECONDS)),
        source_address=source,
        secure=_parse_bool(values.get("SPEEDPROBE_SECURE"), False),
        server_id=int(values.get("SPEEDPROBE_SERVER_ID", 0) or 0),
        latency_attempts=int(
            values.get("SPEEDPROBE_LATENCY_ATTEMPTS", DEFAULT_LATENCY_ATTEMPTS)
        ),
        error_latency=float(values.get("SPEEDPROBE_ERROR_LATENCY", DEFAULT_ERROR_LATENCY)),
        closest_count=int(values.get("SPEEDPROBE_CLOSEST_COUNT", DEFAULT_CLOSEST_COUNT)),
        max_workers=int(values.get("SPEEDPROBE_MAX_WORKERS", DEFAULT_MAX_WORKERS)),
        config_url=values.get("SPEEDPROBE_CONFIG_URL") or DEFAULT_CONFIG_URL,
        servers_url=values.get("SPEEDPROBE_SERVERS_URL") or DEFAULT_SERVERS_URL,
        excluded_ids=_parse_ids(values.get("SPEEDPROBE_EXCLUDE")),
    )


def load_config(env_file: Optional[Path] = None) -> AppConfig:
    """Load configuration values using environment defaults."""
    target_file = env_file or DEFAULT_ENV_FILE
    dotenv_values = _load_env_file(target_file)
    merged = _merge_envs(dotenv_values, os.environ)

    log_directory = Path(merged.get("LOG_DIR", REPO_ROOT / "logs"))
    if not log_directory.is_absolute():
        log_directory = REPO_ROOT / log_directory

    log_level = merged.get("LOG_LEVEL", "INFO").upper()

    return AppConfig(
        log_directory=log_directory,
        log_level=log_level,
        app_name=merged.get("APP_NAME", "speedprobe"),
        client=_client_config_from(merged),
    )


__all__ = [
    "AppConfig",
    "ClientConfig",
    "load_config",
    "REPO_ROOT",
    "DEFAULT_LATENCY_ATTEMPTS",
    "DEFAULT_ERROR_LATENCY",
]
