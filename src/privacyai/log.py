"""Logging setup for the CLI and the responder process."""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(level: str = "INFO", console: Optional[Console] = None) -> None:
    """Route all stdlib logging through a single rich handler.

    Call once at process startup.
    """
    level = level.upper()
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        log_time_format="%Y-%m-%d %H:%M:%S",
    )
    logging.basicConfig(level=level, format="[%(name)s] %(message)s", handlers=[handler], force=True)

    # Quiet down noisy libraries
    for name in ("httpx", "httpcore", "socketio", "engineio"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("privacyai").debug(f"Logging initialised (level={level})")
