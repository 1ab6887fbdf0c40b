"""Endpoint selection orchestration."""

from speedprobe.jobs.selector import run_selection, select_server

__all__ = ["run_selection", "select_server"]
