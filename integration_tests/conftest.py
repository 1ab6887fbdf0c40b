"""Fixtures for integration tests that hit the live speed-test directory."""

import os

import pytest

from speedprobe.config import AppConfig, load_config


@pytest.fixture(scope="session")
def app_config() -> AppConfig:
    if os.environ.get("SPEEDPROBE_INTEGRATION") != "1":
        pytest.skip("Set SPEEDPROBE_INTEGRATION=1 to run tests against the live directory.")
    return load_config()
