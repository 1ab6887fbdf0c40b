"""Error taxonomy shared by the transport, decoding, and selection layers.

Transport and decode failures are raised close to the network call. The
selector re-raises them as ``SelectionError`` subclasses tagged with the
stage that failed so the entrypoint can report where selection stopped.
"""

from enum import Enum
from typing import Optional


class SpeedprobeError(Exception):
    """Base class for every error raised by this package."""


class TransportErrorKind(str, Enum):
    INVALID_REQUEST = "invalid_request"
    UNREACHABLE = "unreachable"


class TransportError(SpeedprobeError):
    """An outbound request could not be built or could not complete."""

    def __init__(self, message: str, kind: TransportErrorKind) -> None:
        super().__init__(message)
        self.kind = kind

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.args[0]}"


class DecodeError(SpeedprobeError):
    """A response body did not match the schema it was decoded with."""

    def __init__(self, schema: str, message: str) -> None:
        super().__init__(message)
        self.schema = schema

    def __str__(self) -> str:
        return f"failed to decode {self.schema}: {self.args[0]}"


class SelectionError(SpeedprobeError):
    """Fatal failure while choosing an endpoint.

    Attributes:
        stage: One of ``directory``, ``decode``, ``lookup``, ``candidates`` or
            ``config``.
    """

    stage: str = "selection"

    def __init__(self, message: str, stage: Optional[str] = None) -> None:
        super().__init__(message)
        if stage is not None:
            self.stage = stage

    def __str__(self) -> str:
        return f"[{self.stage}] {self.args[0]}"


class ConfigurationError(SelectionError):
    stage = "lookup"


class EmptyCandidateSet(SelectionError):
    stage = "candidates"


__all__ = [
    "SpeedprobeError",
    "TransportErrorKind",
    "TransportError",
    "DecodeError",
    "SelectionError",
    "ConfigurationError",
    "EmptyCandidateSet",
]
