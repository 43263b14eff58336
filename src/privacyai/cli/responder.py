"""CLI: privacyai responder"""

import asyncio
from typing import Optional

import click
from rich.console import Console

from privacyai.log import setup_logging
from privacyai.responder import serve
from privacyai.settings import ResponderSettings


@click.command("responder")
@click.option("--relay-url", default=None, help="Relay node URL (overrides RELAY_URL)")
@click.option("--log-level", default=None, help="Log level (overrides LOG_LEVEL)")
@click.option("--no-ollama", is_flag=True, help="Answer with canned fallback replies only")
@click.option("--ready-timeout", type=float, default=None, help="Give up waiting for peers after N seconds")
def responder_cmd(relay_url: Optional[str], log_level: Optional[str], no_ollama: bool, ready_timeout: Optional[float]):
    """Run the AI responder: answer requests from the relay."""
    overrides = {}
    if relay_url:
        overrides["relay_url"] = relay_url
    if log_level:
        overrides["log_level"] = log_level.upper()
    if no_ollama:
        overrides["use_ollama"] = False
    if ready_timeout is not None:
        overrides["ready_timeout"] = ready_timeout
    settings = ResponderSettings(**overrides)

    setup_logging(settings.log_level, console=Console(stderr=True))
    code = asyncio.run(serve(settings))
    raise SystemExit(code)
