"""Chat relay API endpoints"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import Any, AsyncIterator

import aiohttp
from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from models.chat import ChatRelayRequest, ErrorBody
from services.config_manager import ConfigManager
from services.errors import RelayError
from services.identity_service import IdentityService, extract_bearer
from services.llm_service import LLMService

logger = logging.getLogger(__name__)

router = APIRouter()


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorBody(error=message).model_dump(exclude_none=True))


async def _forward(chunks: AsyncIterator[bytes], stack: AsyncExitStack) -> AsyncIterator[bytes]:
    """Pass upstream chunks through untouched, releasing the upstream on exit"""
    forwarded = 0
    try:
        async for chunk in chunks:
            forwarded += len(chunk)
            yield chunk
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        # Headers are already sent; abort the body so the caller sees a broken stream
        logger.error("Upstream stream failed after %d bytes: %s", forwarded, e)
        raise
    finally:
        await stack.aclose()
        logger.debug("Relay stream closed after %d bytes", forwarded)


async def authenticated_user(authorization: str | None = Header(default=None)) -> dict[str, Any]:
    """Resolve the caller; runs before the request body is validated"""
    config = ConfigManager.get_instance().get_config()
    token = extract_bearer(authorization)
    try:
        return await IdentityService(config).get_user(token)
    except ValueError as e:
        logger.error("Relay misconfigured: %s", e)
        raise RelayError(str(e))


@router.post("/stream")
async def chat_stream(request: ChatRelayRequest, user: dict[str, Any] = Depends(authenticated_user)):
    """Stream the upstream completion back to an authenticated caller verbatim"""
    config = ConfigManager.get_instance().get_config()

    llm_service = LLMService(config)
    stack = AsyncExitStack()
    try:
        chunks = await stack.enter_async_context(llm_service.open_stream(request.messages))
    except RelayError as e:
        await stack.aclose()
        return error_response(e.status_code, e.message)
    except ValueError as e:
        await stack.aclose()
        logger.error("Relay misconfigured: %s", e)
        return error_response(500, str(e))

    logger.info("Relaying completion for user %s (%d messages)", user.get("id"), len(request.messages))
    return StreamingResponse(
        _forward(chunks, stack),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        # Covers a caller that disconnects before the body is iterated
        background=BackgroundTask(stack.aclose),
    )
