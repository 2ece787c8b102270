"""Terminal chat front end for the relay"""

from __future__ import annotations

import asyncio
import signal
from typing import Optional

import typer

from models.chat import Role
from services.config_manager import ConfigManager
from services.logging_config import init_logging
from .relay_client import RelayClient
from .session import ChatSession, SessionState

app = typer.Typer(add_completion=False, help="Chat with the real estate assistant through the relay.")


class _DeltaPrinter:
    """Echo newly streamed assistant text"""

    def __init__(self):
        self.printed = 0

    def reset(self):
        self.printed = 0

    def __call__(self, session: ChatSession):
        last = session.transcript.last
        if session.state is not SessionState.STREAMING or last is None or last.role is not Role.ASSISTANT:
            return
        if len(last.content) > self.printed:
            typer.echo(last.content[self.printed :], nl=False)
            self.printed = len(last.content)


async def _repl(client: RelayClient, token: Optional[str]):
    session = ChatSession(client, lambda: token)
    printer = _DeltaPrinter()
    session.on_update(printer)

    loop = asyncio.get_running_loop()
    try:
        while True:
            try:
                text = await asyncio.to_thread(input, "> ")
            except EOFError:
                break
            if text.strip() == "/quit":
                break

            printer.reset()
            loop.add_signal_handler(signal.SIGINT, session.cancel)
            try:
                accepted = await session.submit(text)
            finally:
                loop.remove_signal_handler(signal.SIGINT)
            if not accepted:
                continue
            if printer.printed:
                typer.echo()
            if session.state is SessionState.ERROR:
                typer.secho(session.notice, fg=typer.colors.RED, err=True)
    finally:
        await client.close()


@app.command()
def chat(
    token: Optional[str] = typer.Option(None, "--token", envvar="CHAT_RELAY_TOKEN", help="Bearer token of the signed-in user"),
    relay_url: Optional[str] = typer.Option(None, "--relay-url", help="Override the configured relay endpoint"),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
):
    """Start an interactive chat. Ctrl-C stops a reply, /quit or Ctrl-D exits."""
    init_logging(log_level)
    config = ConfigManager.get_instance().get_config()
    client = RelayClient.from_config(config, relay_url)
    asyncio.run(_repl(client, token))
