"""CLI: privacyai config show|set|reset"""

import json

import click
from rich.console import Console
from rich.table import Table

from privacyai.settings import DEFAULT_RELAY_URL, DEFAULT_REQUEST_TOPIC, DEFAULT_RESPONSE_TOPIC

console = Console()

DEFAULTS = {
    "relay_url": DEFAULT_RELAY_URL,
    "request_topic": DEFAULT_REQUEST_TOPIC,
    "response_topic": DEFAULT_RESPONSE_TOPIC,
}
KEYS = tuple(DEFAULTS) + ("relay_token",)


def _load_config() -> dict:
    from privacyai.cli.main import _load_config
    return _load_config()


def _save_config(cfg: dict) -> None:
    from privacyai.cli.main import _save_config
    _save_config(cfg)


@click.group()
def config():
    """Saved relay settings."""


@config.command("show")
@click.option("--json-output", "--json", is_flag=True)
def config_show(json_output):
    """Show effective relay settings."""
    cfg = {**DEFAULTS, **_load_config()}
    if json_output:
        click.echo(json.dumps(cfg, indent=2))
        return
    table = Table(title="Relay settings")
    table.add_column("Key", style="bold")
    table.add_column("Value")
    for key in KEYS:
        value = cfg.get(key)
        if key == "relay_token" and value:
            value = "****"
        table.add_row(key, "" if value is None else str(value))
    console.print(table)


@config.command("set")
@click.argument("key", type=click.Choice(KEYS))
@click.argument("value")
def config_set(key, value):
    """Save a relay setting."""
    cfg = _load_config()
    cfg[key] = value
    _save_config(cfg)
    console.print(f"[green]{key} saved.[/green]")


@config.command("reset")
def config_reset():
    """Clear saved settings."""
    _save_config({})
    console.print("[green]Settings cleared.[/green]")
