"""
Frame Decoder - turn a streamed response body into data-frame payloads
"""

from __future__ import annotations

import codecs
import logging
from typing import Iterator

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "


class FrameDecoder:
    """Incremental line splitter for ``data: <payload>`` frames.

    Bytes go in through :meth:`feed`; payloads come out of :meth:`payloads`,
    which is lazy and stops once the buffered text has no complete line left,
    so it is restarted after every chunk. Text is decoded statefully, so a
    UTF-8 sequence split across two chunks is held back until complete.

    A payload handed back through :meth:`push_back` is an object cut in two
    by an upstream line break. It is kept as a pending fragment and glued to
    the next raw line, whatever that line looks like, before being offered
    again.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._fragment: str | None = None

    @property
    def buffered(self) -> str:
        """Text received but not yet split into lines"""
        return self._buffer

    @property
    def pending(self) -> str | None:
        """Fragment waiting for its continuation, if any"""
        return self._fragment

    def feed(self, chunk: bytes):
        """Append one chunk of the body"""
        self._buffer += self._decoder.decode(chunk)

    def finish(self):
        """Mark end of body; a trailing line without newline becomes complete"""
        self._buffer += self._decoder.decode(b"", final=True)
        if self._buffer and not self._buffer.endswith("\n"):
            self._buffer += "\n"

    def push_back(self, payload: str):
        """Hold ``payload`` until the next line arrives"""
        logger.debug("Deferring incomplete payload (%d chars)", len(payload))
        self._fragment = payload

    def payloads(self) -> Iterator[str]:
        """Yield payloads for every complete line currently buffered"""
        while True:
            newline = self._buffer.find("\n")
            if newline == -1:
                return
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1 :]
            payload = self._accept(line)
            if payload is not None:
                yield payload

    def _accept(self, line: str) -> str | None:
        if line.endswith("\r"):
            line = line[:-1]

        if self._fragment is not None:
            fragment, self._fragment = self._fragment, None
            if not line.startswith(DATA_PREFIX):
                return f"{fragment}\n{line}"
            logger.warning("Dropping unparseable frame payload (%d chars)", len(fragment))

        if line.startswith(":") or not line.strip():
            return None
        if not line.startswith(DATA_PREFIX):
            return None
        return line[len(DATA_PREFIX) :].strip()
