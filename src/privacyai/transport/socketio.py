"""
Socket.IO relay transport.

Connects to a relay node that fans messages out to every peer subscribed
to a topic. Relay protocol:

  S2C ready    {peers: n}                 relay handshake finished
  S2C peers    {count: n}                 peer count changed
  S2C message  {topic, payload}           inbound message on a subscribed topic
  C2S subscribe {topic}          ack {ok}
  C2S publish   {topic, payload} ack {delivered: n}
"""

import asyncio
import logging
from typing import Any, Optional

import socketio
from socketio import exceptions as sio_exceptions

from privacyai.errors import ConnectionError, SubscriptionError
from privacyai.transport.base import MessageCallback, PubSubTransport

SOCKETIO_PATH = "/socket.io/"

logger = logging.getLogger(__name__)


class SocketIOTransport(PubSubTransport):
    def __init__(
        self,
        relay_url: str,
        token: Optional[str] = None,
        transports: Optional[list[str]] = None,
        socketio_path: str = SOCKETIO_PATH,
        min_peers: int = 1,
        ack_timeout: Optional[float] = None,
    ):
        self._relay_url = relay_url
        self._token = token
        self._transports = transports or ["websocket"]
        self._socketio_path = socketio_path
        self._min_peers = min_peers
        self._ack_timeout = ack_timeout
        self._sio: Optional[socketio.AsyncClient] = None
        self._peers = 0
        self._ready = asyncio.Event()
        self._peers_ready = asyncio.Event()
        self._callbacks: dict[str, MessageCallback] = {}

    @property
    def connected(self) -> bool:
        return self._sio is not None and self._sio.connected

    async def connect(self) -> None:
        if self._sio and self._sio.connected:
            return

        self._sio = socketio.AsyncClient()
        self._ready.clear()
        self._peers_ready.clear()

        @self._sio.on("ready")
        async def on_ready(data: Any = None) -> None:
            self._ready.set()
            if isinstance(data, dict):
                self._set_peers(data.get("peers"))

        @self._sio.on("peers")
        async def on_peers(data: Any = None) -> None:
            if isinstance(data, dict):
                self._set_peers(data.get("count"))

        @self._sio.on("message")
        async def on_message(data: Any = None) -> None:
            self._handle_message(data)

        @self._sio.event
        async def disconnect(_reason: str = "") -> None:
            self._set_peers(0)

        try:
            await self._sio.connect(
                self._relay_url,
                auth={"token": self._token} if self._token else None,
                transports=self._transports,
                socketio_path=self._socketio_path,
            )
        except sio_exceptions.ConnectionError as e:
            self._sio = None
            raise ConnectionError(f"Could not reach relay at {self._relay_url}: {e}")

    async def wait_for_peers(self) -> None:
        await self._ready.wait()
        await self._peers_ready.wait()

    async def publish(self, topic: str, payload: bytes) -> bool:
        if not self.connected:
            return False
        ack = await self._sio.call(  # type: ignore[union-attr]
            "publish", {"topic": topic, "payload": payload}, timeout=self._ack_timeout,
        )
        delivered = ack.get("delivered", 0) if isinstance(ack, dict) else 0
        return isinstance(delivered, int) and delivered > 0

    async def subscribe(self, topic: str, callback: MessageCallback) -> None:
        if not self.connected:
            raise SubscriptionError("Relay not connected", topic=topic)
        try:
            ack = await self._sio.call("subscribe", {"topic": topic}, timeout=self._ack_timeout)  # type: ignore[union-attr]
        except sio_exceptions.SocketIOError as e:
            raise SubscriptionError(f"Subscribe request failed: {e}", topic=topic)
        if not (isinstance(ack, dict) and ack.get("ok")):
            raise SubscriptionError(f"Relay rejected subscription: {ack!r}", topic=topic)
        self._callbacks[topic] = callback

    def peer_count(self) -> int:
        return self._peers if self.connected else 0

    async def close(self) -> None:
        self._callbacks.clear()
        self._set_peers(0)
        if self._sio:
            await self._sio.disconnect()
            self._sio = None

    def _set_peers(self, count: Any) -> None:
        if not isinstance(count, int) or count < 0:
            return
        self._peers = count
        if count >= self._min_peers:
            self._peers_ready.set()
        else:
            self._peers_ready.clear()

    def _handle_message(self, data: Any) -> None:
        if not isinstance(data, dict):
            logger.warning(f"Dropping relay message with unexpected shape: {type(data).__name__}")
            return
        callback = self._callbacks.get(data.get("topic", ""))
        if callback is None:
            return
        payload = data.get("payload")
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        callback(payload if isinstance(payload, (bytes, bytearray)) else b"")
