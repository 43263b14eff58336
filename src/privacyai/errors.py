"""
PrivacyAI error types.
"""

from typing import Any, Optional


class PrivacyAIError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class ConnectionError(PrivacyAIError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("connection_error", message, details)


class EnvelopeError(PrivacyAIError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("envelope_error", message, details)


class SubscriptionError(PrivacyAIError):
    def __init__(self, message: str, topic: Optional[str] = None):
        super().__init__("subscription_error", message, {"topic": topic} if topic else None)
        self.topic = topic


class GeneratorError(PrivacyAIError):
    def __init__(self, message: str, code: str = "generator_error"):
        super().__init__(code, message)
