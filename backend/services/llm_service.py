"""
LLM Service - Opens streaming completions against an OpenAI-compatible upstream
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Sequence

import aiohttp

from models.chat import Message
from .errors import QuotaExhausted, RateLimited, TransportFailure, UpstreamError

logger = logging.getLogger(__name__)


class LLMService:
    """Service for streaming chat completions from the upstream provider"""

    def __init__(self, config: dict[str, Any]):
        self.config = config

    # ========== Config Helpers ==========

    def _get_upstream_config(self) -> tuple[str, str, dict[str, str], int]:
        """Get upstream config: (model, url, headers, timeout). Raises if api_key missing."""
        cfg = self.config.get("upstream", {})
        api_key = cfg.get("apiKey")
        if not api_key:
            raise ValueError("Upstream API key not configured")
        base_url = (cfg.get("baseUrl") or "https://api.openai.com/v1").rstrip("/")
        model = cfg.get("model", "gpt-4o-mini")
        url = f"{base_url}/chat/completions"
        headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        timeout = int(cfg.get("timeoutSeconds", 120))
        return model, url, headers, timeout

    # ========== Message/Payload Builders ==========

    def _build_messages(self, messages: Sequence[Message]) -> list[dict[str, str]]:
        """Build OpenAI-style messages array with the configured persona first"""
        built = []
        system_prompt = self.config.get("upstream", {}).get("systemPrompt")
        if system_prompt:
            built.append({"role": "system", "content": system_prompt})
        for message in messages:
            built.append({"role": message.role.value, "content": message.content})
        return built

    def _build_payload(self, model: str, messages: list[dict[str, str]]) -> dict[str, Any]:
        """Build OpenAI-compatible streaming request payload"""
        return {
            "model": model,
            "messages": messages,
            "stream": True,
        }

    # ========== Streaming ==========

    @asynccontextmanager
    async def open_stream(self, messages: Sequence[Message]) -> AsyncIterator[AsyncIterator[bytes]]:
        """Open an upstream completion and yield its body as raw byte chunks.

        Status errors are raised before anything is yielded, so callers can
        still choose the response status. Chunks are passed on exactly as
        received; frame boundaries are left to the downstream decoder.
        """
        model, url, headers, timeout_seconds = self._get_upstream_config()
        payload = self._build_payload(model, self._build_messages(messages))

        # No total timeout: a long completion must not be cut off mid-stream
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=30, sock_read=timeout_seconds)
        session = aiohttp.ClientSession(timeout=timeout)
        try:
            try:
                response = await session.post(url, json=payload, headers=headers)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.error("Upstream request failed: %s", e)
                raise TransportFailure(f"Upstream request failed: {e}")

            try:
                await self._raise_for_status(response)
                logger.info("Upstream stream opened (model: %s, messages: %d)", model, len(messages))
                yield response.content.iter_any()
            finally:
                response.release()
        finally:
            await session.close()

    async def _raise_for_status(self, response: aiohttp.ClientResponse):
        if response.status == 200:
            return

        error_text = await response.text()
        if response.status == 429:
            logger.warning("Upstream rate limit (429): %s", error_text)
            raise RateLimited()
        if response.status == 402:
            logger.warning("Upstream quota exhausted (402): %s", error_text)
            raise QuotaExhausted()
        logger.error("Upstream API error (%s): %s", response.status, error_text)
        raise UpstreamError()
