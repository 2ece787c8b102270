"""
Relay Client - HTTP access to the chat relay endpoint
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Sequence

import aiohttp

from models.chat import Message
from services.errors import TransportFailure, error_for_status

logger = logging.getLogger(__name__)


class RelayStream:
    """Body of an accepted relay response"""

    def __init__(self, response: aiohttp.ClientResponse):
        self._response = response
        self.closed = False

    async def chunks(self) -> AsyncIterator[bytes]:
        """Yield body chunks in arrival order"""
        try:
            async for chunk in self._response.content.iter_any():
                yield chunk
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            if self.closed:
                return
            raise TransportFailure(f"Relay stream interrupted: {e}")

    def close(self):
        """Abort the body; a pending read ends instead of failing"""
        self.closed = True
        self._response.close()


class RelayClient:
    """Posts transcripts to the relay and hands back the streamed body"""

    def __init__(self, relay_url: str, publishable_key: str = "", timeout_seconds: int = 120):
        self.relay_url = relay_url
        self.publishable_key = publishable_key
        self.timeout_seconds = timeout_seconds
        self._session: aiohttp.ClientSession | None = None

    @classmethod
    def from_config(cls, config: dict[str, Any], relay_url: str | None = None) -> "RelayClient":
        cfg = config.get("client", {})
        return cls(
            relay_url=relay_url or cfg.get("relayUrl", "http://localhost:8000/api/chat/stream"),
            publishable_key=cfg.get("publishableKey", ""),
            timeout_seconds=int(cfg.get("timeoutSeconds", 120)),
        )

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=None, sock_connect=30, sock_read=self.timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    def _build_headers(self, credential: str) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Authorization": f"Bearer {credential}"}
        if self.publishable_key:
            headers["apikey"] = self.publishable_key
        return headers

    async def _error_detail(self, response: aiohttp.ClientResponse) -> str | None:
        """Read the ``error`` field of a JSON error body, if there is one"""
        try:
            body = await response.json(content_type=None)
        except (ValueError, aiohttp.ClientError):
            return None
        if isinstance(body, dict) and isinstance(body.get("error"), str):
            return body["error"]
        return None

    @asynccontextmanager
    async def open_stream(self, messages: Sequence[Message], credential: str) -> AsyncIterator[RelayStream]:
        """POST the transcript; yields the body once the relay accepted it"""
        payload = {"messages": [message.model_dump(mode="json") for message in messages]}
        session = self._get_session()
        try:
            response = await session.post(self.relay_url, json=payload, headers=self._build_headers(credential))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportFailure(f"Relay request failed: {e}")

        try:
            if not 200 <= response.status < 300:
                detail = await self._error_detail(response)
                logger.info("Relay refused request (HTTP %s): %s", response.status, detail)
                raise error_for_status(response.status, detail)
            yield RelayStream(response)
        finally:
            response.release()

    async def close(self):
        if self._session is not None:
            await self._session.close()
            self._session = None
