"""
Event Assembler - map frame payloads to stream events and apply them
"""

from __future__ import annotations

import json
import logging
from typing import Any

from models.stream import DONE_SENTINEL, DecodedEvent, Delta, Done, NeedMoreBytes
from .frame_decoder import FrameDecoder
from .transcript import Transcript

logger = logging.getLogger(__name__)


def extract_delta(data: Any) -> str | None:
    """Extract ``choices[0].delta.content`` from a stream chunk, if present"""
    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if isinstance(choices, list) and len(choices) > 0 and isinstance(choices[0], dict):
        delta = choices[0].get("delta")
        if isinstance(delta, dict):
            content = delta.get("content")
            if isinstance(content, str) and content:
                return content
    return None


def parse_payload(payload: str) -> DecodedEvent | None:
    """Classify one data-frame payload; ``None`` means nothing to apply"""
    if payload == DONE_SENTINEL:
        return Done()
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        return NeedMoreBytes(payload=payload)
    text = extract_delta(data)
    if text is None:
        return None
    return Delta(text=text)


class EventAssembler:
    """Feeds body chunks through a decoder and grows the transcript"""

    def __init__(self, transcript: Transcript, decoder: FrameDecoder | None = None):
        self.transcript = transcript
        self.decoder = decoder or FrameDecoder()
        self.done = False
        self.deltas = 0

    def consume(self, chunk: bytes) -> bool:
        """Process one chunk completely. Returns True once the sentinel was seen."""
        if self.done:
            return True
        self.decoder.feed(chunk)
        self._drain()
        return self.done

    def finish(self) -> bool:
        """Process whatever is left at end of body"""
        if not self.done:
            self.decoder.finish()
            self._drain()
        return self.done

    def _drain(self):
        for payload in self.decoder.payloads():
            event = parse_payload(payload)
            if isinstance(event, Done):
                self.done = True
                return
            if isinstance(event, NeedMoreBytes):
                self.decoder.push_back(event.payload)
            elif isinstance(event, Delta):
                self.transcript.append_delta(event.text)
                self.deltas += 1
