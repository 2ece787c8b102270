"""
Chat Session - drives one conversation against the relay
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import AsyncGenerator, AsyncIterator, Callable, Optional, Protocol, Sequence

from models.chat import MAX_MESSAGES, Message
from services.errors import ErrorKind, RelayError, Unauthenticated, UpstreamError
from .event_assembler import EventAssembler
from .transcript import Transcript

logger = logging.getLogger(__name__)

NOTICES = {
    ErrorKind.UNAUTHENTICATED: "Please sign in to use the chat",
    ErrorKind.RATE_LIMITED: "Too many requests. Please try again later.",
    ErrorKind.QUOTA_EXHAUSTED: "AI usage credits exhausted. Please add credits.",
    ErrorKind.UPSTREAM_ERROR: "Failed to get response from AI",
    ErrorKind.TRANSPORT_FAILURE: "Failed to get response from AI",
}


async def _read_next(chunks: AsyncIterator[bytes]) -> bytes:
    return await anext(chunks)


async def _stop(task: asyncio.Task):
    """Cancel ``task`` and wait until it has unwound"""
    task.cancel()
    await asyncio.wait({task})


class SessionState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    ERROR = "error"


class StreamHandle(Protocol):
    def chunks(self) -> AsyncGenerator[bytes, None]: ...

    def close(self) -> None: ...


class StreamOpener(Protocol):
    def open_stream(self, messages: Sequence[Message], credential: str): ...


class ChatSession:
    """Transcript controller: one request in flight at most.

    The caller's bearer token comes from ``credential_provider`` on every
    submit. A failed turn removes the half-built assistant reply; a
    cancelled turn keeps whatever had already streamed.
    """

    def __init__(self, client: StreamOpener, credential_provider: Callable[[], Optional[str]]):
        self.transcript = Transcript()
        self.state = SessionState.IDLE
        self.last_error: ErrorKind | None = None
        self.notice: str | None = None
        self._client = client
        self._credential_provider = credential_provider
        self._stream: StreamHandle | None = None
        self._cancel_event: asyncio.Event | None = None
        self._observers: list[Callable[["ChatSession"], None]] = []

    @property
    def pending(self) -> bool:
        return self.state in (SessionState.SENDING, SessionState.STREAMING)

    @property
    def messages(self) -> list[Message]:
        return self.transcript.messages

    def on_update(self, callback: Callable[["ChatSession"], None]):
        """Register a callback run after every transcript or state change"""
        self._observers.append(callback)

    def _notify(self):
        for callback in self._observers:
            callback(self)

    async def submit(self, text: str) -> bool:
        """Send ``text`` as the next user turn. Returns False if the submit was ignored."""
        text = (text or "").strip()
        if self.pending or not text:
            return False

        self.transcript.append_user(text)
        self.state = SessionState.SENDING
        self.last_error = None
        self.notice = None
        self._cancel_event = asyncio.Event()
        self._notify()

        try:
            await self._run_turn()
        except asyncio.CancelledError:
            # Torn down from outside; same outcome as a user cancel
            self.transcript.discard_if_empty()
            self.transcript.close()
            self.state = SessionState.IDLE
            self._notify()
            raise
        except RelayError as e:
            self._fail(e)
        except Exception as e:
            logger.exception("Unexpected chat failure")
            self._fail(UpstreamError(str(e)))
        finally:
            self._stream = None
        return True

    def cancel(self) -> bool:
        """Stop the active turn, keeping text that already arrived"""
        if not self.pending or self._cancel_event is None:
            return False
        self._cancel_event.set()
        if self._stream is not None:
            self._stream.close()
        return True

    async def _run_turn(self):
        credential = self._credential_provider()
        if not credential:
            raise Unauthenticated("No active session")

        # The relay caps a request at MAX_MESSAGES; older turns fall out of the window
        history = self.transcript.messages[-MAX_MESSAGES:]
        async with self._client.open_stream(history, credential) as stream:
            self._stream = stream
            self.transcript.open_assistant()
            self.state = SessionState.STREAMING
            self._notify()

            assembler = EventAssembler(self.transcript)
            chunks = stream.chunks()
            try:
                while True:
                    chunk = await self._next_chunk(chunks)
                    if chunk is None:
                        break
                    done = assembler.consume(chunk)
                    self._notify()
                    if done:
                        break
            finally:
                await chunks.aclose()

            if not assembler.done and not self._cancelled:
                assembler.finish()
                if assembler.decoder.pending is not None:
                    logger.warning(
                        "Stream ended with an incomplete frame (%d chars); reply truncated",
                        len(assembler.decoder.pending),
                    )

        if self._cancelled:
            logger.info("Chat turn cancelled after %d deltas", assembler.deltas)
        if self.transcript.discard_if_empty():
            logger.info("Reply carried no text; assistant message dropped")
        self.transcript.close()
        self.state = SessionState.IDLE
        self._notify()

    @property
    def _cancelled(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    async def _next_chunk(self, chunks: AsyncIterator[bytes]) -> bytes | None:
        """Wait for the next chunk; None on end of body or cancellation"""
        if self._cancelled:
            return None
        read = asyncio.create_task(_read_next(chunks))
        cancelled = asyncio.create_task(self._cancel_event.wait())
        try:
            await asyncio.wait({read, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            await _stop(read)
            raise
        finally:
            cancelled.cancel()

        if self._cancelled:
            if read.done():
                if not read.cancelled() and read.exception() is not None:
                    logger.debug("Read error after cancel ignored: %s", read.exception())
            else:
                await _stop(read)
            return None
        try:
            return read.result()
        except StopAsyncIteration:
            return None


    def _fail(self, error: RelayError):
        if self.transcript.open:
            self.transcript.rollback()
        self.state = SessionState.ERROR
        self.last_error = error.kind
        self.notice = NOTICES[error.kind]
        logger.warning("Chat turn failed (%s): %s", error.kind.value, error.message)
        self._notify()
