"""
Pub/sub transport interface.

The relay core only needs these primitives from a transport. Live and
in-memory implementations are chosen at construction time.
"""

from abc import ABC, abstractmethod
from typing import Callable

MessageCallback = Callable[[bytes], None]


class PubSubTransport(ABC):
    """Minimal contract for a best-effort broadcast transport."""

    @abstractmethod
    async def connect(self) -> None:
        """Start the transport node. Raises ConnectionError on failure."""

    @abstractmethod
    async def wait_for_peers(self) -> None:
        """Resolve once enough remote peers are reachable to publish and subscribe."""

    @abstractmethod
    async def publish(self, topic: str, payload: bytes) -> bool:
        """Send ``payload`` on ``topic``. True if at least one peer acknowledged."""

    @abstractmethod
    async def subscribe(self, topic: str, callback: MessageCallback) -> None:
        """Register ``callback`` for ``topic``, replacing any previous one.

        Raises SubscriptionError when the subscription cannot be set up.
        """

    @abstractmethod
    def peer_count(self) -> int:
        """Number of peers currently reachable."""

    @abstractmethod
    async def close(self) -> None:
        """Stop the node. Best effort; pending deliveries may be lost."""
