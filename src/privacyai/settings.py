"""Responder configuration loaded from environment variables (and `.env`)."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_REQUEST_TOPIC = "/privacyai/1/chat-request/proto"
DEFAULT_RESPONSE_TOPIC = "/privacyai/1/chat-response/proto"
DEFAULT_RELAY_URL = "http://localhost:8000"


class RelaySettings(BaseSettings):
    """Topic and relay settings shared by the client and the responder.

    Topics must match between the two processes or no messages are ever seen.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    relay_url: str = DEFAULT_RELAY_URL
    relay_token: Optional[str] = None
    request_topic: str = DEFAULT_REQUEST_TOPIC
    response_topic: str = DEFAULT_RESPONSE_TOPIC


class ResponderSettings(RelaySettings):
    """Responder process settings.

    ``READY_TIMEOUT`` unset means wait for peers without a deadline.
    """

    # -- AI backend ------------------------------------------------------------
    ollama_host: str = "http://localhost:11434"
    ollama_model: str = "deepseek-r1:8b"
    use_ollama: bool = True
    """False forces the canned fallback generator."""

    # -- Process -----------------------------------------------------------------
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    ready_timeout: Optional[float] = None
    status_interval: float = 30.0
    subscribe_attempts: int = 3
    subscribe_backoff: float = 2.0
