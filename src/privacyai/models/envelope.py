"""
Relay envelope — the unit exchanged over a pub/sub topic.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class MessageKind(str, Enum):
    REQUEST = "request"
    RESPONSE = "response"


class Envelope(BaseModel):
    session_id: str = Field(alias="sessionId")
    message_id: str = Field(alias="messageId")
    content: str
    timestamp: str  # ISO-8601, set by the sender
    kind: MessageKind = Field(alias="type")
    # messageId of the request this envelope answers; absent on requests
    correlation_id: Optional[str] = Field(default=None, alias="correlationId")

    model_config = {"populate_by_name": True, "extra": "ignore"}
