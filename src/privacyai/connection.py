"""
Connection manager — owns the transport handle and the ConnectionStatus
state machine.

connect() moves idle -> connecting -> connected | degraded. The manager
never retries on its own. In strict mode (the responder) a failed
bootstrap raises instead of degrading.
"""

import asyncio
import logging
from typing import Callable, Optional

from privacyai.errors import ConnectionError, PrivacyAIError
from privacyai.models.status import ConnectionStatus
from privacyai.transport.base import PubSubTransport

CLIENT_READY_TIMEOUT_S = 30.0
DEMO_READY_TIMEOUT_S = 5.0

logger = logging.getLogger(__name__)

StatusListener = Callable[[ConnectionStatus, ConnectionStatus], None]


class ConnectionManager:
    def __init__(
        self,
        transport: PubSubTransport,
        ready_timeout: Optional[float] = CLIENT_READY_TIMEOUT_S,
        strict: bool = False,
    ):
        self._transport = transport
        self._ready_timeout = ready_timeout
        self._strict = strict
        self._status = ConnectionStatus.IDLE
        self._listeners: list[StatusListener] = []
        self.last_error: Optional[str] = None

    @property
    def transport(self) -> PubSubTransport:
        return self._transport

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def connected(self) -> bool:
        return self._status == ConnectionStatus.CONNECTED

    def peer_count(self) -> int:
        if self._status in (ConnectionStatus.IDLE, ConnectionStatus.DISCONNECTED):
            return 0
        return self._transport.peer_count()

    def add_listener(self, listener: StatusListener) -> Callable[[], None]:
        """Register a (previous, current) status listener. Returns a cleanup function."""
        self._listeners.append(listener)
        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass
        return remove

    async def connect(self) -> ConnectionStatus:
        if self._status != ConnectionStatus.IDLE:
            # connecting/connected: no-op. degraded/disconnected: caller builds a new manager.
            return self._status

        self._set_status(ConnectionStatus.CONNECTING)
        try:
            await self._transport.connect()
            if self._ready_timeout is None:
                logger.info("Waiting for remote peers (no timeout)...")
                await self._transport.wait_for_peers()
            else:
                logger.info(f"Waiting for remote peers (timeout {self._ready_timeout:g}s)...")
                await asyncio.wait_for(self._transport.wait_for_peers(), timeout=self._ready_timeout)
        except asyncio.TimeoutError:
            return self._fail(f"Peer connection timeout after {self._ready_timeout:g}s")
        except (PrivacyAIError, OSError) as e:
            return self._fail(f"Transport connection failed: {e}")

        self.last_error = None
        self._set_status(ConnectionStatus.CONNECTED)
        logger.info(f"Connected to {self._transport.peer_count()} peers")
        return self._status

    async def close(self) -> None:
        if self._status == ConnectionStatus.DISCONNECTED:
            return
        try:
            await self._transport.close()
        except Exception as e:
            logger.warning(f"Error while closing transport: {e}")
        self._set_status(ConnectionStatus.DISCONNECTED)

    def _fail(self, reason: str) -> ConnectionStatus:
        self.last_error = reason
        self._set_status(ConnectionStatus.DEGRADED)
        if self._strict:
            raise ConnectionError(reason)
        logger.warning(f"{reason}; continuing in fallback mode")
        return self._status

    def _set_status(self, status: ConnectionStatus) -> None:
        previous = self._status
        if previous == status:
            return
        self._status = status
        logger.info(f"Connection status: {previous.value} -> {status.value}")
        for listener in list(self._listeners):
            listener(previous, status)
