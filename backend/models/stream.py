"""Decoded stream events"""

from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel

DONE_SENTINEL = "[DONE]"


class Delta(BaseModel):
    """Incremental fragment of assistant text"""

    type: Literal["delta"] = "delta"
    text: str


class Done(BaseModel):
    """Logical end of stream"""

    type: Literal["done"] = "done"


class NeedMoreBytes(BaseModel):
    """Payload is not complete JSON yet; it must be retried with the next line"""

    type: Literal["need_more_bytes"] = "need_more_bytes"
    payload: str


DecodedEvent = Union[Delta, Done, NeedMoreBytes]
