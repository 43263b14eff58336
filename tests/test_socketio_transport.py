"""Socket.IO relay transport: behaviour that does not need a live relay."""

import asyncio

import pytest

from privacyai.errors import SubscriptionError
from privacyai.transport.socketio import SocketIOTransport


class TestSocketIOTransport:
    @pytest.mark.asyncio
    async def test_publish_refused_when_not_connected(self):
        transport = SocketIOTransport("http://relay.test")
        assert await transport.publish("/t", b"{}") is False
        assert transport.peer_count() == 0

    @pytest.mark.asyncio
    async def test_subscribe_refused_when_not_connected(self):
        transport = SocketIOTransport("http://relay.test")
        with pytest.raises(SubscriptionError) as exc:
            await transport.subscribe("/t", lambda payload: None)
        assert exc.value.topic == "/t"

    @pytest.mark.asyncio
    async def test_peer_readiness_follows_peer_count(self):
        transport = SocketIOTransport("http://relay.test", min_peers=2)
        waiter = asyncio.ensure_future(transport.wait_for_peers())
        transport._ready.set()
        transport._set_peers(1)
        await asyncio.sleep(0.01)
        assert not waiter.done()

        transport._set_peers(2)
        await asyncio.wait_for(waiter, 1.0)

    def test_ignores_bogus_peer_counts(self):
        transport = SocketIOTransport("http://relay.test")
        transport._set_peers(3)
        transport._set_peers(None)
        transport._set_peers(-1)
        assert transport._peers == 3

    def test_routes_messages_by_topic(self):
        transport = SocketIOTransport("http://relay.test")
        received: dict[str, list[bytes]] = {"/a": [], "/b": []}
        transport._callbacks["/a"] = received["/a"].append
        transport._callbacks["/b"] = received["/b"].append

        transport._handle_message({"topic": "/a", "payload": b"one"})
        transport._handle_message({"topic": "/b", "payload": "two"})
        transport._handle_message({"topic": "/c", "payload": b"nobody"})
        transport._handle_message(["not", "a", "dict"])

        assert received == {"/a": [b"one"], "/b": [b"two"]}
