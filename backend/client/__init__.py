"""Client module - streaming chat client for the relay"""

from .event_assembler import EventAssembler, extract_delta, parse_payload
from .frame_decoder import FrameDecoder
from .relay_client import RelayClient, RelayStream
from .session import NOTICES, ChatSession, SessionState
from .transcript import Transcript

__all__ = [
    "ChatSession",
    "EventAssembler",
    "FrameDecoder",
    "NOTICES",
    "RelayClient",
    "RelayStream",
    "SessionState",
    "Transcript",
    "extract_delta",
    "parse_payload",
]
