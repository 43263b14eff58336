"""
Chat session and message models for the client side.
"""

from typing import Literal, Optional
from pydantic import BaseModel


class ChatSession(BaseModel):
    id: str
    title: str = "New Chat"
    created_at: str = ""
    updated_at: str = ""


class ChatMessage(BaseModel):
    id: str
    session_id: str
    content: str
    role: Literal["user", "assistant"]
    timestamp: str
    simulated: bool = False  # produced locally by the fallback simulator
    reply_to: Optional[str] = None  # correlationId carried by the response, if any
