"""
In-process pub/sub network for demo mode and tests.

Every node attached to an InMemoryNetwork is a peer of every other node.
Deliveries are scheduled on the running event loop, so a publisher never
sees its subscribers run inline.
"""

import asyncio
import logging
from typing import Optional

from privacyai.errors import ConnectionError, SubscriptionError
from privacyai.transport.base import MessageCallback, PubSubTransport

logger = logging.getLogger(__name__)


class InMemoryNetwork:
    def __init__(self) -> None:
        self._nodes: list["InMemoryTransport"] = []
        self._changed = asyncio.Event()

    @property
    def nodes(self) -> list["InMemoryTransport"]:
        return list(self._nodes)

    def attach(self, node: "InMemoryTransport") -> None:
        if node not in self._nodes:
            self._nodes.append(node)
            self._notify()

    def detach(self, node: "InMemoryTransport") -> None:
        if node in self._nodes:
            self._nodes.remove(node)
            self._notify()

    def peers_of(self, node: "InMemoryTransport") -> list["InMemoryTransport"]:
        return [n for n in self._nodes if n is not node]

    async def wait_changed(self) -> None:
        await self._changed.wait()

    def _notify(self) -> None:
        # Wake current waiters, then re-arm for the next change.
        self._changed.set()
        self._changed = asyncio.Event()

    def broadcast(self, sender: "InMemoryTransport", topic: str, payload: bytes) -> int:
        """Schedule delivery to every subscribed peer. Returns number of acknowledging peers."""
        peers = self.peers_of(sender)
        loop = asyncio.get_running_loop()
        for peer in peers:
            callback = peer.callback_for(topic)
            if callback is not None:
                loop.call_soon(callback, payload)
        return len(peers)


class InMemoryTransport(PubSubTransport):
    """Deterministic stand-in for a live transport node.

    ``subscribe_failures`` makes the first N subscribe calls raise, and
    ``reject_publish`` makes every publish report zero acknowledgements.
    ``connect_error`` makes connect() fail outright.
    """

    def __init__(
        self,
        network: InMemoryNetwork,
        name: str = "node",
        subscribe_failures: int = 0,
        reject_publish: bool = False,
        connect_error: Optional[str] = None,
    ):
        self.network = network
        self.name = name
        self.subscribe_failures = subscribe_failures
        self.reject_publish = reject_publish
        self.connect_error = connect_error
        self.subscribe_calls = 0
        self.published: list[tuple[str, bytes]] = []
        self._callbacks: dict[str, MessageCallback] = {}
        self._started = False

    def __repr__(self) -> str:
        return f"InMemoryTransport(name={self.name!r})"

    async def connect(self) -> None:
        if self.connect_error:
            raise ConnectionError(self.connect_error)
        self._started = True
        self.network.attach(self)

    async def wait_for_peers(self) -> None:
        while not self.network.peers_of(self):
            await self.network.wait_changed()

    async def publish(self, topic: str, payload: bytes) -> bool:
        if not self._started:
            return False
        self.published.append((topic, payload))
        if self.reject_publish:
            return False
        return self.network.broadcast(self, topic, payload) > 0

    async def subscribe(self, topic: str, callback: MessageCallback) -> None:
        self.subscribe_calls += 1
        if self.subscribe_failures > 0:
            self.subscribe_failures -= 1
            raise SubscriptionError("Filter protocol not available", topic=topic)
        if not self._started:
            raise SubscriptionError("Node not started", topic=topic)
        self._callbacks[topic] = callback

    def callback_for(self, topic: str) -> Optional[MessageCallback]:
        return self._callbacks.get(topic)

    def inject(self, topic: str, payload: bytes) -> None:
        """Deliver raw bytes to this node as if a remote peer had published them."""
        callback = self._callbacks.get(topic)
        if callback is not None:
            callback(payload)

    def peer_count(self) -> int:
        return len(self.network.peers_of(self)) if self._started else 0

    async def close(self) -> None:
        self._started = False
        self._callbacks.clear()
        self.network.detach(self)
