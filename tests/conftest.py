"""Shared pytest fixtures for the speedprobe tests.

Provides in-memory fakes for ``requests`` responses and for the transport so
tests stay deterministic and never touch the network.
"""

import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import pytest

from speedprobe.api.response import ResponseEnvelope
from speedprobe.config import AppConfig, ClientConfig
from speedprobe.errors import TransportError, TransportErrorKind

CONFIG_URL = "://directory.example/speedtest-config.php"
SERVERS_URL = "://directory.example/speedtest-servers-static.php"

CONFIG_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<settings>
  <client ip="203.0.113.7" lat="35.6895" lon="139.6917" isp="Example ISP" isprating="3.7"/>
  <server-config threadcount="4" ignoreids="444,555" notonmap=""/>
</settings>
"""

SERVERS_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<settings>
  <servers>
    <server url="http://tokyo.example:8080/speedtest/upload.php" lat="35.6833" lon="139.6833"
            name="Tokyo" country="Japan" cc="JP" sponsor="Tokyo Net" id="12345" host="tokyo.example:8080"/>
    <server url="http://osaka.example:8080/speedtest/upload.php" lat="34.6937" lon="135.5023"
            name="Osaka" country="Japan" cc="JP" sponsor="Osaka Net" id="222" host="osaka.example:8080"/>
    <server url="http://seoul.example/speedtest/upload.php" lat="37.5665" lon="126.9780"
            name="Seoul" country="South Korea" cc="KR" sponsor="Seoul Net" id="333" host="seoul.example"/>
    <server url="http://ignored.example/speedtest/upload.php" lat="35.0" lon="139.0"
            name="Ignored" country="Japan" cc="JP" sponsor="Ignored Net" id="444" host="ignored.example"/>
  </servers>
</settings>
"""


class FakeResponse:
    """Stand-in for a streamed ``requests.Response``."""

    def __init__(
        self,
        status_code: int = 200,
        content: bytes = b"",
        url: str = "http://fake.example/",
        read_error: Optional[BaseException] = None,
        close_error: Optional[BaseException] = None,
    ) -> None:
        self.status_code = status_code
        self.headers = {"Content-Type": "text/plain"}
        self.url = url
        self._content = content
        self._read_error = read_error
        self._close_error = close_error
        self.reads = 0
        self.close_calls = 0

    @property
    def content(self) -> bytes:
        self.reads += 1
        if self._read_error is not None:
            raise self._read_error
        return self._content

    def close(self) -> None:
        self.close_calls += 1
        if self._close_error is not None:
            raise self._close_error


Route = Union[bytes, float, int, BaseException, Callable[[], FakeResponse]]


class FakeTransport:
    """Transport double keyed by URL.

    A ``bytes`` route returns that body with status 200, a number advances the
    calling thread's fake clock by that many seconds before returning, an
    exception is raised as an unreachable ``TransportError``, and a callable
    produces a custom ``FakeResponse``.
    """

    def __init__(self, routes: Optional[Dict[str, Route]] = None) -> None:
        self.routes: Dict[str, Route] = dict(routes or {})
        self.calls: List[str] = []
        self.responses: List[FakeResponse] = []
        self.closed = False
        self._lock = threading.Lock()
        self._local = threading.local()

    def clock(self) -> float:
        return getattr(self._local, "now", 0.0)

    def get(self, url: str) -> ResponseEnvelope:
        with self._lock:
            self.calls.append(url)
        route = self.routes.get(url)
        if route is None:
            raise TransportError(f"no route for {url}", TransportErrorKind.UNREACHABLE)
        if isinstance(route, BaseException):
            raise TransportError(str(route), TransportErrorKind.UNREACHABLE)
        if callable(route):
            response = route()
        elif isinstance(route, bytes):
            response = FakeResponse(content=route, url=url)
        else:
            self._local.now = self.clock() + float(route)
            response = FakeResponse(content=b"test=test", url=url)
        with self._lock:
            self.responses.append(response)
        return ResponseEnvelope(response)

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "FakeTransport":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


@pytest.fixture
def client_config() -> ClientConfig:
    return ClientConfig(
        timeout=2.0,
        config_url=CONFIG_URL,
        servers_url=SERVERS_URL,
        latency_attempts=3,
        error_latency=3600.0,
        closest_count=3,
        max_workers=4,
    )


@pytest.fixture
def app_config(tmp_path: Path, client_config: ClientConfig) -> AppConfig:
    """Application config fixture.

    Points logging to a temporary directory and the directory service to
    fake URLs served by ``FakeTransport``.
    """
    return AppConfig(
        log_directory=tmp_path,
        log_level="INFO",
        client=client_config,
    )


@pytest.fixture
def config_xml() -> bytes:
    return CONFIG_XML


@pytest.fixture
def servers_xml() -> bytes:
    return SERVERS_XML


@pytest.fixture
def make_response() -> Callable[..., FakeResponse]:
    """Factory for ``FakeResponse`` objects; accepts the same keyword arguments."""

    def _make(**kwargs) -> FakeResponse:
        return FakeResponse(**kwargs)

    return _make


@pytest.fixture
def make_transport(client_config: ClientConfig) -> Callable[..., FakeTransport]:
    """Factory for ``FakeTransport`` objects.

    With ``directory=True`` the sample configuration and server list are
    routed at the URLs named by ``client_config``; ``routes`` are added on top.
    """

    def _make(routes: Optional[Dict[str, Route]] = None, *, directory: bool = False) -> FakeTransport:
        merged: Dict[str, Route] = {}
        if directory:
            merged[client_config.config_url] = CONFIG_XML
            merged[client_config.servers_url] = SERVERS_XML
        merged.update(routes or {})
        return FakeTransport(merged)

    return _make


@pytest.fixture
def directory_transport(make_transport) -> FakeTransport:
    """Fake transport serving the sample configuration and server list."""
    return make_transport(directory=True)
