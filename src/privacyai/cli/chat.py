"""CLI: privacyai chat, privacyai send"""

import asyncio
import json
from typing import Optional

import click
from rich.console import Console

from privacyai.chat import ChatClient
from privacyai.models.chat import ChatMessage
from privacyai.models.status import ConnectionStatus

console = Console()


def _build_runtime(demo: bool, offline: bool, relay_url: Optional[str]):
    from privacyai.cli.main import _build_runtime
    return _build_runtime(demo=demo, offline=offline, relay_url=relay_url)


def _run(coro):
    from privacyai.cli.main import _run
    return _run(coro)


def _print_status(status: ConnectionStatus) -> None:
    if status == ConnectionStatus.CONNECTED:
        console.print("[green]Relay connected[/green]")
    else:
        console.print(f"[yellow]Relay {status.value} — replies will be simulated[/yellow]")


def _print_reply(message: ChatMessage) -> None:
    if message.simulated:
        console.print(f"[yellow]Assistant (simulated):[/yellow] {message.content}")
    else:
        console.print(f"[green]Assistant:[/green] {message.content}")


def _next_reply(client: ChatClient, session_id: str) -> "asyncio.Future[ChatMessage]":
    """Future resolved with the next assistant message in ``session_id``."""
    future: asyncio.Future[ChatMessage] = asyncio.get_running_loop().create_future()

    def _listener(message: ChatMessage) -> None:
        if message.session_id == session_id and message.role == "assistant" and not future.done():
            future.set_result(message)

    remove = client.add_listener(_listener)
    future.add_done_callback(lambda _: remove())
    return future


relay_options = [
    click.option("--demo", is_flag=True, help="Use an in-process network with a canned responder"),
    click.option("--offline", is_flag=True, help="Use an in-process network with no peers"),
    click.option("--relay-url", default=None, help="Relay node URL (overrides saved config)"),
]


def _with_relay_options(fn):
    for option in reversed(relay_options):
        fn = option(fn)
    return fn


@click.command("chat")
@_with_relay_options
def chat_cmd(demo: bool, offline: bool, relay_url: Optional[str]):
    """Interactive chat over the relay."""

    async def _chat():
        runtime = _build_runtime(demo, offline, relay_url)
        client = runtime.client
        with console.status("Connecting to relay..."):
            await runtime.start()
        _print_status(client.status)
        session = client.create_session()
        console.print(f"[dim]Session: {session.id}[/dim]")
        console.print("[cyan]Type your message (/new for a new session, /quit to exit)[/cyan]\n")
        try:
            while True:
                msg = await asyncio.to_thread(click.prompt, "You", prompt_suffix=": ")
                if msg.lower() in ("/quit", "/exit"):
                    break
                if msg.lower() == "/new":
                    session = client.create_session()
                    console.print(f"[dim]Session: {session.id}[/dim]")
                    continue
                reply = _next_reply(client, session.id)
                if await client.send_message(msg) is None:
                    reply.cancel()
                    continue
                _print_reply(await reply)
        except (KeyboardInterrupt, EOFError, click.Abort):
            pass
        finally:
            await runtime.stop()

    _run(_chat())


@click.command("send")
@click.argument("message")
@click.option("--json-output", "--json", is_flag=True)
@_with_relay_options
def send_cmd(message: str, json_output: bool, demo: bool, offline: bool, relay_url: Optional[str]):
    """Send a one-shot message and print the reply."""

    async def _send():
        runtime = _build_runtime(demo, offline, relay_url)
        client = runtime.client
        await runtime.start()
        status = client.status
        if not json_output:
            _print_status(status)
        session = client.create_session()
        reply = _next_reply(client, session.id)
        try:
            if await client.send_message(message) is None:
                reply.cancel()
                raise click.UsageError("Message must not be empty")
            answer = await reply
        finally:
            await runtime.stop()
        if json_output:
            click.echo(json.dumps({
                "session_id": session.id,
                "status": status.value,
                "reply": answer.model_dump(),
            }))
        else:
            _print_reply(answer)

    _run(_send())
