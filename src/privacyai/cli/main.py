"""
PrivacyAI CLI — `privacyai` command.

Commands:
  privacyai chat            Interactive REPL chat over the relay
  privacyai send <message>  One-shot message
  privacyai responder       Run the AI responder service
  privacyai config <cmd>    Show or change saved relay settings
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import click
from rich.console import Console

from privacyai.chat import ChatClient
from privacyai.connection import DEMO_READY_TIMEOUT_S, ConnectionManager
from privacyai.generator import CannedGenerator
from privacyai.log import setup_logging
from privacyai.responder import ResponderLoop
from privacyai.settings import DEFAULT_RELAY_URL, DEFAULT_REQUEST_TOPIC, DEFAULT_RESPONSE_TOPIC
from privacyai.transport.memory import InMemoryNetwork, InMemoryTransport

console = Console()
CONFIG_FILE = Path.home() / ".privacyai" / "config.json"


def _load_config() -> dict:
    try:
        return json.loads(CONFIG_FILE.read_text())
    except (FileNotFoundError, json.JSONDecodeError):
        return {}


def _save_config(cfg: dict) -> None:
    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_FILE.write_text(json.dumps(cfg, indent=2))


def _run(coro: Any) -> Any:
    return asyncio.run(coro)


class Runtime:
    """A chat client plus, in demo mode, an in-process responder on the same network."""

    def __init__(self, client: ChatClient, responder: Optional[ResponderLoop] = None):
        self.client = client
        self.responder = responder

    async def start(self) -> None:
        if self.responder:
            # Both nodes must be attached before either sees a peer.
            await asyncio.gather(self.responder.start(), self.client.start())
        else:
            await self.client.start()

    async def stop(self) -> None:
        await self.client.stop()
        if self.responder:
            await self.responder.stop()


def _build_runtime(demo: bool = False, offline: bool = False, relay_url: Optional[str] = None) -> Runtime:
    cfg = _load_config()
    request_topic = cfg.get("request_topic", DEFAULT_REQUEST_TOPIC)
    response_topic = cfg.get("response_topic", DEFAULT_RESPONSE_TOPIC)

    if demo or offline:
        network = InMemoryNetwork()
        client = ChatClient(
            InMemoryTransport(network, name="client"),
            request_topic=request_topic,
            response_topic=response_topic,
            ready_timeout=DEMO_READY_TIMEOUT_S,
        )
        if offline:
            return Runtime(client)
        responder = ResponderLoop(
            ConnectionManager(InMemoryTransport(network, name="responder"), ready_timeout=None, strict=True),
            CannedGenerator(delay=(0.5, 1.5)),
            request_topic=request_topic,
            response_topic=response_topic,
            status_interval=0,
        )
        return Runtime(client, responder)

    from privacyai.transport.socketio import SocketIOTransport
    transport = SocketIOTransport(
        relay_url or cfg.get("relay_url", DEFAULT_RELAY_URL), token=cfg.get("relay_token"),
    )
    return Runtime(ChatClient(transport, request_topic=request_topic, response_topic=response_topic))


@click.group()
@click.version_option("0.1.0")
@click.option("--log-level", default="WARNING", help="Log level for relay diagnostics")
def main(log_level: str):
    """PrivacyAI CLI — chat with an AI responder over a pub/sub relay."""
    setup_logging(log_level)


# Register subcommands from separate modules
from privacyai.cli.chat import chat_cmd, send_cmd
from privacyai.cli.config import config
from privacyai.cli.responder import responder_cmd

main.add_command(chat_cmd)
main.add_command(send_cmd)
main.add_command(responder_cmd)
main.add_command(config)


if __name__ == "__main__":
    main()
