from __future__ import annotations

from contextlib import asynccontextmanager

import pytest
from aiohttp import test_utils, web

from client.relay_client import RelayClient
from client.session import ChatSession, SessionState
from fakes import body
from models.chat import Message, Role
from services.errors import QuotaExhausted, RateLimited, Unauthenticated, UpstreamError


@asynccontextmanager
async def _serve(handler):
    app = web.Application()
    app.router.add_post("/api/chat/stream", handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        yield str(server.make_url("/api/chat/stream"))
    finally:
        await server.close()


def _streaming_handler(chunks: list[bytes], seen: list):
    async def handler(request: web.Request) -> web.StreamResponse:
        seen.append((dict(request.headers), await request.json()))
        response = web.StreamResponse(status=200, headers={"Content-Type": "text/event-stream"})
        await response.prepare(request)
        for chunk in chunks:
            await response.write(chunk)
        await response.write_eof()
        return response

    return handler


def _status_handler(status: int, error: str):
    async def handler(request: web.Request) -> web.Response:
        return web.json_response({"error": error}, status=status)

    return handler


@pytest.mark.asyncio
async def test_posts_transcript_with_credentials_and_streams_body() -> None:
    payload = body("Hi", "!")
    seen: list = []
    async with _serve(_streaming_handler([payload[:10], payload[10:]], seen)) as url:
        client = RelayClient(url, publishable_key="pub-key")
        messages = [Message(role=Role.USER, content="hello")]
        try:
            async with client.open_stream(messages, "user-token") as stream:
                received = b"".join([chunk async for chunk in stream.chunks()])
        finally:
            await client.close()

    headers, sent = seen[0]
    assert headers["Authorization"] == "Bearer user-token"
    assert headers["apikey"] == "pub-key"
    assert headers["Content-Type"].startswith("application/json")
    assert sent == {"messages": [{"role": "user", "content": "hello"}]}
    assert received == payload


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, error_type",
    [(401, Unauthenticated), (429, RateLimited), (402, QuotaExhausted), (500, UpstreamError), (503, UpstreamError)],
)
async def test_status_codes_map_to_errors(status: int, error_type) -> None:
    async with _serve(_status_handler(status, "nope")) as url:
        client = RelayClient(url)
        try:
            with pytest.raises(error_type) as excinfo:
                async with client.open_stream([Message(role=Role.USER, content="x")], "t"):
                    pass
        finally:
            await client.close()
    assert excinfo.value.message == "nope"


@pytest.mark.asyncio
async def test_session_over_http() -> None:
    seen: list = []
    async with _serve(_streaming_handler([body("Hello", ", world")], seen)) as url:
        client = RelayClient(url)
        session = ChatSession(client, lambda: "token")
        try:
            await session.submit("hi")
        finally:
            await client.close()

    assert session.state is SessionState.IDLE
    assert session.messages[-1].content == "Hello, world"
    assert seen[0][1]["messages"][-1]["content"] == "hi"
