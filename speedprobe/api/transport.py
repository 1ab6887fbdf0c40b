"""Identified HTTP transport for directory fetches and latency probes.

Every request goes through one ``requests.Session`` so connections are pooled
across probe threads. Scheme-relative URLs (``://host/path``) published by the
directory are completed according to the configured TLS preference.
"""

import logging
import platform
from typing import Dict, Mapping, Optional, Union
from urllib.parse import urlsplit

import requests
from requests.adapters import HTTPAdapter

from speedprobe import __version__
from speedprobe.api.response import ResponseEnvelope
from speedprobe.config import ClientConfig
from speedprobe.errors import TransportError, TransportErrorKind

LOGGER = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 "
    f"({platform.system()}; U; {platform.machine()}; en-us) "
    f"Python/{platform.python_version()} "
    f"(KHTML, like Gecko) speedprobe/{__version__}"
)

Body = Union[bytes, str, None]


def normalize_url(url: str, secure: bool) -> str:
    """Complete a scheme-relative URL such as ``://example.com/path``."""
    if url.startswith(":"):
        return ("https" if secure else "http") + url
    return url


class SourceAddressAdapter(HTTPAdapter):
    """``HTTPAdapter`` that binds outbound connections to a local address."""

    def __init__(self, source_address: str, **kwargs) -> None:
        # must be set before HTTPAdapter.__init__ builds the pool manager
        self._source_address = (source_address, 0)
        super().__init__(**kwargs)

    def init_poolmanager(self, connections, maxsize, block=False, **pool_kwargs):
        pool_kwargs["source_address"] = self._source_address
        super().init_poolmanager(connections, maxsize, block=block, **pool_kwargs)

    def proxy_manager_for(self, proxy, **proxy_kwargs):
        proxy_kwargs["source_address"] = self._source_address
        return super().proxy_manager_for(proxy, **proxy_kwargs)


class Transport:
    """Thin wrapper around a ``requests.Session`` with a fixed identity."""

    def __init__(
        self,
        config: ClientConfig,
        session: Optional[requests.Session] = None,
    ) -> None:
        """Initialize the transport.

        Args:
            config: Timeout, TLS preference and optional source address.
            session: Optional pre-configured session. When omitted, a session
                is created with a connection pool sized for ``config.max_workers``
                and, if configured, bound to ``config.source_address``.
        """
        self._config = config
        if session is None:
            session = requests.Session()
            if config.source_address:
                adapter: HTTPAdapter = SourceAddressAdapter(
                    config.source_address, pool_maxsize=config.max_workers
                )
            else:
                adapter = HTTPAdapter(pool_maxsize=config.max_workers)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self._session = session

    @property
    def timeout(self) -> float:
        return self._config.timeout

    def _headers(self, extra: Optional[Mapping[str, str]]) -> Dict[str, str]:
        headers = {"User-Agent": USER_AGENT}
        if extra:
            headers.update(extra)
        return headers

    def _resolve(self, url: str) -> str:
        target = normalize_url(url, self._config.secure)
        parts = urlsplit(target)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise TransportError(f"invalid URL {url!r}", TransportErrorKind.INVALID_REQUEST)
        return target

    def request(
        self,
        method: str,
        url: str,
        *,
        body: Body = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> ResponseEnvelope:
        """Send one request and return its unread response.

        Raises:
            TransportError: ``INVALID_REQUEST`` for a malformed URL or method,
                ``UNREACHABLE`` for connection and timeout failures.
        """
        if not method or not method.isalpha():
            raise TransportError(f"invalid method {method!r}", TransportErrorKind.INVALID_REQUEST)
        target = self._resolve(url)
        LOGGER.debug("transport.request method=%s url=%s", method.upper(), target)
        try:
            response = self._session.request(
                method.upper(),
                target,
                data=body,
                headers=self._headers(headers),
                timeout=self._config.timeout,
                stream=True,
            )
        except (
            requests.exceptions.MissingSchema,
            requests.exceptions.InvalidSchema,
            requests.exceptions.InvalidURL,
        ) as exc:
            raise TransportError(str(exc), TransportErrorKind.INVALID_REQUEST) from exc
        except requests.RequestException as exc:
            raise TransportError(
                f"{method.upper()} {target} failed: {exc}", TransportErrorKind.UNREACHABLE
            ) from exc
        return ResponseEnvelope(response)

    def get(self, url: str) -> ResponseEnvelope:
        return self.request("GET", url)

    def post(self, url: str, content_type: str, body: Body) -> ResponseEnvelope:
        return self.request("POST", url, body=body, headers={"Content-Type": content_type})

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "Transport":
        return self

    def __exit__(self, exc_type, exc, exc_tb) -> None:
        self.close()


__all__ = ["Transport", "SourceAddressAdapter", "USER_AGENT", "normalize_url"]
