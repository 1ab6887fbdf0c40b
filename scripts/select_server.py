#!/usr/bin/env python3
"""Command-line entrypoint that picks the speed-test server to use."""

import argparse
import dataclasses
import logging

from speedprobe.config import REPO_ROOT, AppConfig, load_config
from speedprobe.errors import SelectionError, SpeedprobeError
from speedprobe.jobs import run_selection
from speedprobe.logging_utils import configure_logging


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Select the best speed-test server.")
    parser.add_argument(
        "--server",
        type=int,
        default=None,
        help="Use this server id instead of ranking the closest servers.",
    )
    parser.add_argument(
        "--secure",
        action="store_true",
        help="Use https for scheme-relative directory URLs.",
    )
    parser.add_argument(
        "--source",
        type=str,
        default=None,
        help="Local source IP address to bind outbound connections to.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-request timeout in seconds.",
    )
    parser.add_argument(
        "--attempts",
        type=int,
        default=None,
        help="Latency probes per server.",
    )
    parser.add_argument(
        "--closest",
        type=int,
        default=None,
        help="Number of nearest servers to probe in automatic mode.",
    )
    return parser.parse_args()


def _apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    overrides = {
        "server_id": args.server,
        "source_address": args.source,
        "timeout": args.timeout,
        "latency_attempts": args.attempts,
        "closest_count": args.closest,
    }
    changes = {key: value for key, value in overrides.items() if value is not None}
    if args.secure:
        changes["secure"] = True
    if not changes:
        return config
    return dataclasses.replace(config, client=dataclasses.replace(config.client, **changes))


def main() -> int:
    args = parse_args()
    try:
        config = _apply_overrides(load_config(), args)
    except (ValueError, SpeedprobeError) as exc:
        # Fall back to a default log location so startup failures are still captured.
        configure_logging(AppConfig(log_directory=REPO_ROOT / "logs", log_level="INFO"))
        logging.getLogger(__name__).error("Failed to load configuration: %s", exc)
        return 1

    configure_logging(config)
    logger = logging.getLogger(__name__)

    try:
        selected = run_selection(config)
    except SelectionError as exc:
        logger.error("Server selection failed at stage %s: %s", exc.stage, exc.args[0])
        return 1

    latency_ms = (selected.latency or 0.0) * 1000
    print(f"{selected.id}\t{selected.sponsor}\t{selected.name}\t{latency_ms:.2f}ms\t{selected.url}")
    return 0


if __name__ == "__main__":  # pragma: no cover - script entrypoint
    raise SystemExit(main())
