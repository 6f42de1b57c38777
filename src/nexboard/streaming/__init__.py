"""Live event fan-out to text/event-stream clients."""

from .auth import StaticTokenVerifier, TokenVerifier
from .endpoint import EventStreamResponse, StreamSession, StreamingUnsupported
from .events import Event, encode_frame
from .hub import EventHub, HubConfig
from .registry import SubscriberRegistry
from .subscriber import Mailbox, Subscriber

__all__ = [
    "Event",
    "EventHub",
    "EventStreamResponse",
    "HubConfig",
    "Mailbox",
    "StaticTokenVerifier",
    "StreamSession",
    "StreamingUnsupported",
    "Subscriber",
    "SubscriberRegistry",
    "TokenVerifier",
    "encode_frame",
]
