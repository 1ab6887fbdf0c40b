"""Read-once response wrapper and schema-directed decoding.

A ``ResponseEnvelope`` owns one streamed ``requests.Response``. Its body is
drained at most once and the underlying connection is released on every exit
path of the drain, including read failures.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

import requests

from speedprobe.errors import DecodeError, TransportError, TransportErrorKind

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Schema:
    """A named decoder turning raw body bytes into a structured value."""

    name: str
    parse: Callable[[bytes], Any]


class ResponseEnvelope:
    """Status, headers and the unread body of a single HTTP exchange.

    Attributes:
        status_code: HTTP status reported by the server.
        headers: Response headers.
        url: Final URL of the exchange.
        close_error: Error raised while releasing the connection after a
            successful read, if any. The content is still returned.
    """

    def __init__(self, response: requests.Response) -> None:
        self._response = response
        self.status_code: int = response.status_code
        self.headers: Mapping[str, str] = response.headers
        self.url: str = response.url
        self.close_error: Optional[BaseException] = None
        self._drained = False
        self._content: Optional[bytes] = None
        self._read_error: Optional[TransportError] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def drained(self) -> bool:
        return self._drained

    def read_content(self) -> bytes:
        """Return the whole body, closing the response as the last step.

        Later calls return the cached body (or re-raise the cached read error)
        without touching the response again.
        """
        if self._drained:
            if self._read_error is not None:
                raise self._read_error
            return self._content or b""

        self._drained = True
        try:
            content = self._response.content
        except (requests.RequestException, OSError) as exc:
            self._read_error = TransportError(
                f"failed reading body from {self.url}: {exc}",
                TransportErrorKind.UNREACHABLE,
            )
            raise self._read_error from exc
        finally:
            self._release()

        self._content = content
        return content

    def read_structured(self, schema: Schema) -> Any:
        return read_structured(self, schema)

    def raise_for_status(self) -> None:
        """Raise ``TransportError`` for a non-2xx status, releasing the body."""
        if self.ok:
            return
        self.close()
        raise TransportError(
            f"HTTP {self.status_code} from {self.url}",
            TransportErrorKind.UNREACHABLE,
        )

    def close(self) -> None:
        """Release the response without reading it; a no-op once drained."""
        if self._drained:
            return
        self._drained = True
        self._content = b""
        self._release()

    def _release(self) -> None:
        try:
            self._response.close()
        except Exception as exc:  # noqa: BLE001
            # a read error takes precedence over the close error
            if self._read_error is None:
                self.close_error = exc
                LOGGER.warning("Error closing response from %s: %s", self.url, exc)

    def __enter__(self) -> "ResponseEnvelope":
        return self

    def __exit__(self, exc_type, exc, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"ResponseEnvelope(status={self.status_code}, url={self.url!r}, drained={self._drained})"


def read_content(envelope: ResponseEnvelope) -> bytes:
    """Drain ``envelope`` and return its body; see ``ResponseEnvelope.read_content``."""
    return envelope.read_content()


def read_structured(envelope: ResponseEnvelope, schema: Schema) -> Any:
    """Drain ``envelope`` and decode the body with ``schema``.

    Raises:
        TransportError: The body could not be read.
        DecodeError: The body did not parse; carries ``schema.name``.
    """
    content = envelope.read_content()
    try:
        return schema.parse(content)
    except DecodeError:
        raise
    except Exception as exc:  # noqa: BLE001 - any parser failure is a decode failure
        raise DecodeError(schema.name, str(exc)) from exc


__all__ = ["ResponseEnvelope", "Schema", "read_content", "read_structured"]
