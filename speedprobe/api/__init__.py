"""HTTP transport and response handling.

Exports:
- ``Transport``: identified GET/POST over a shared ``requests`` session.
- ``ResponseEnvelope``: read-once wrapper around a streamed response.
- ``read_content`` / ``read_structured``: drain a response and decode it.
"""

from speedprobe.api.response import ResponseEnvelope, Schema, read_content, read_structured
from speedprobe.api.transport import USER_AGENT, SourceAddressAdapter, Transport, normalize_url

__all__ = [
    "ResponseEnvelope",
    "Schema",
    "read_content",
    "read_structured",
    "Transport",
    "SourceAddressAdapter",
    "USER_AGENT",
    "normalize_url",
]
