"""Models module - Pydantic data models"""

from .chat import ChatRelayRequest, ErrorBody, InboundMessage, Message, Role
from .stream import DONE_SENTINEL, DecodedEvent, Delta, Done, NeedMoreBytes

__all__ = [
    # Chat models
    "ChatRelayRequest",
    "ErrorBody",
    "InboundMessage",
    "Message",
    "Role",
    # Stream events
    "DONE_SENTINEL",
    "DecodedEvent",
    "Delta",
    "Done",
    "NeedMoreBytes",
]
