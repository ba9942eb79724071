"""HTTP and event-stream access to the case server."""

from .client import CaseClient
from .stream import EventStream, SSEDecoder, StreamEvent, Subscription, parse_sse_lines

__all__ = [
    "CaseClient",
    "EventStream",
    "SSEDecoder",
    "StreamEvent",
    "Subscription",
    "parse_sse_lines",
]
