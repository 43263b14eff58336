"""
privacyai — chat with a remote AI responder over a pub/sub relay.

Requests go out on one topic, responses come back on another, and the
client falls back to clearly labelled simulated replies when the relay
is unavailable.
"""

from privacyai.chat import ChatClient
from privacyai.connection import ConnectionManager
from privacyai.errors import PrivacyAIError, ConnectionError, EnvelopeError, SubscriptionError, GeneratorError
from privacyai.fallback import FallbackReason, FallbackSimulator
from privacyai.models.chat import ChatMessage, ChatSession
from privacyai.models.envelope import Envelope, MessageKind
from privacyai.models.status import ConnectionStatus, ResponderState
from privacyai.publisher import Publisher
from privacyai.responder import ResponderLoop
from privacyai.subscriber import Subscriber

__version__ = "0.1.0"
__all__ = [
    "ChatClient",
    "ConnectionManager",
    "Publisher",
    "Subscriber",
    "FallbackSimulator",
    "FallbackReason",
    "ResponderLoop",
    "Envelope",
    "MessageKind",
    "ChatMessage",
    "ChatSession",
    "ConnectionStatus",
    "ResponderState",
    "PrivacyAIError",
    "ConnectionError",
    "EnvelopeError",
    "SubscriptionError",
    "GeneratorError",
]
