"""
Responder loop — turns requests on the request topic into responses on the
response topic.

State machine:
  starting -> subscribing(1..N) -> listening
                                -> degraded   (retries exhausted; process stays up)
  any -> stopped

Each request is handled in its own task, so a slow generator call never
holds back intake of the next request. Responses are published in
generator completion order.
"""

import asyncio
import logging
import signal
import time
from typing import Any, Awaitable, Callable, Optional

from privacyai.connection import ConnectionManager
from privacyai.errors import ConnectionError, PrivacyAIError
from privacyai.generator import APOLOGY, AIService, CannedGenerator, Generator, OllamaGenerator
from privacyai.models.envelope import Envelope, MessageKind
from privacyai.models.status import ResponderState
from privacyai.publisher import Publisher
from privacyai.settings import ResponderSettings
from privacyai.subscriber import Subscriber
from privacyai.transport.base import PubSubTransport
from privacyai.transport.envelope import build_response

SUBSCRIBE_ATTEMPTS = 3
SUBSCRIBE_BACKOFF_S = 2.0
STATUS_INTERVAL_S = 30.0

logger = logging.getLogger(__name__)


class ResponderStats:
    __slots__ = ("started_at", "messages_processed", "responses_published",
                 "publish_failures", "generator_failures", "_clock")

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.started_at = clock()
        self.messages_processed = 0
        self.responses_published = 0
        self.publish_failures = 0
        self.generator_failures = 0

    @property
    def uptime(self) -> float:
        return self._clock() - self.started_at

    @property
    def per_minute(self) -> float:
        minutes = self.uptime / 60
        if minutes <= 0:
            return 0.0
        return round(self.messages_processed / minutes, 2)

    def format_uptime(self) -> str:
        total = int(self.uptime)
        hours, rest = divmod(total, 3600)
        minutes, seconds = divmod(rest, 60)
        return f"{hours}h {minutes}m {seconds}s"


class ResponderLoop:
    def __init__(
        self,
        connection: ConnectionManager,
        generator: Generator,
        request_topic: str,
        response_topic: str,
        subscribe_attempts: int = SUBSCRIBE_ATTEMPTS,
        subscribe_backoff: float = SUBSCRIBE_BACKOFF_S,
        status_interval: float = STATUS_INTERVAL_S,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if subscribe_attempts < 1:
            raise ValueError("subscribe_attempts must be at least 1")
        self._connection = connection
        self._generator = generator
        self._publisher = Publisher(connection)
        self._subscriber = Subscriber(connection)
        self.request_topic = request_topic
        self.response_topic = response_topic
        self._attempts = subscribe_attempts
        self._backoff = subscribe_backoff
        self._status_interval = status_interval
        self._sleep = sleep
        self._clock = clock
        self._state = ResponderState.STARTING
        self._status_task: Optional[asyncio.Task[None]] = None
        self.subscribe_attempt = 0
        self.stats = ResponderStats(clock)

    @property
    def state(self) -> ResponderState:
        return self._state

    @property
    def listening(self) -> bool:
        return self._state == ResponderState.LISTENING

    async def start(self) -> ResponderState:
        """Connect, subscribe to requests, start status reporting.

        Raises ConnectionError if the connection manager is strict and bootstrap fails.
        """
        logger.info("Starting responder...")
        logger.info(f"Request topic: {self.request_topic}")
        logger.info(f"Response topic: {self.response_topic}")
        self.stats = ResponderStats(self._clock)

        await self._connection.connect()
        if not self._connection.connected:
            logger.error(f"Transport not connected ({self._connection.last_error}); not listening")
            self._set_state(ResponderState.DEGRADED)
        else:
            await self._subscribe_with_retry()

        if self._status_interval > 0 and self._state != ResponderState.STOPPED:
            self._status_task = asyncio.ensure_future(self._status_loop())
        return self._state

    async def _subscribe_with_retry(self) -> bool:
        for attempt in range(1, self._attempts + 1):
            self.subscribe_attempt = attempt
            self._set_state(ResponderState.SUBSCRIBING)
            try:
                await self._subscriber.subscribe(self.request_topic, MessageKind.REQUEST, self.handle_request)
            except (PrivacyAIError, OSError) as e:
                logger.warning(f"Subscription attempt {attempt} failed: {e}")
                if attempt < self._attempts:
                    logger.info(
                        f"Retrying subscription in {self._backoff:g} seconds... "
                        f"(attempt {attempt + 1}/{self._attempts})"
                    )
                    await self._sleep(self._backoff)
                continue
            logger.info(f"Subscription active for topic {self.request_topic}")
            self._set_state(ResponderState.LISTENING)
            return True

        logger.error("Failed to subscribe after all attempts. Responder stays up but won't receive messages.")
        self._set_state(ResponderState.DEGRADED)
        return False

    async def handle_request(self, request: Envelope) -> Envelope:
        """Generate and publish exactly one response for ``request``."""
        self.stats.messages_processed += 1
        logger.info(
            f"[{self.stats.messages_processed}] Received request: session={request.session_id} "
            f"message={request.message_id} content={request.content[:100]!r}"
        )

        try:
            content = await self._generator.generate(request.content)
        except Exception as e:
            self.stats.generator_failures += 1
            logger.error(f"Generator failed for message {request.message_id}: {e!r}")
            content = APOLOGY

        response = build_response(request, content)
        if await self._publisher.publish(self.response_topic, response):
            self.stats.responses_published += 1
        else:
            self.stats.publish_failures += 1
            logger.error(f"Failed to send response for session {request.session_id}")
        return response

    def log_status(self) -> dict[str, Any]:
        status = {
            "state": self._state.value,
            "connected": self._connection.connected,
            "peers": self._connection.peer_count(),
            "uptime": self.stats.format_uptime(),
            "messages_processed": self.stats.messages_processed,
            "avg_per_minute": self.stats.per_minute,
        }
        logger.info("Service status: " + ", ".join(f"{k}={v}" for k, v in status.items()))
        return status

    async def _status_loop(self) -> None:
        while True:
            await self._sleep(self._status_interval)
            self.log_status()

    async def stop(self, drain_timeout: float = 5.0) -> None:
        if self._state == ResponderState.STOPPED:
            return
        logger.info("Shutting down responder...")
        self._set_state(ResponderState.STOPPED)
        if self._status_task:
            self._status_task.cancel()
            self._status_task = None
        await self._subscriber.drain(timeout=drain_timeout)
        self._subscriber.clear()
        await self._connection.close()
        logger.info("Responder shut down")

    def _set_state(self, state: ResponderState) -> None:
        if state != self._state:
            logger.debug(f"Responder state: {self._state.value} -> {state.value}")
            self._state = state


def build_generator(settings: ResponderSettings) -> AIService:
    ollama = OllamaGenerator(host=settings.ollama_host, model=settings.ollama_model) if settings.use_ollama else None
    return AIService(ollama=ollama, canned=CannedGenerator(delay=(1.0, 3.0)), use_ollama=settings.use_ollama)


async def serve(
    settings: ResponderSettings,
    transport: Optional[PubSubTransport] = None,
    generator: Optional[Generator] = None,
    stop_event: Optional[asyncio.Event] = None,
) -> int:
    """Run the responder until SIGINT/SIGTERM or ``stop_event``. Returns the exit status."""
    if transport is None:
        from privacyai.transport.socketio import SocketIOTransport
        transport = SocketIOTransport(settings.relay_url, token=settings.relay_token)
    ai = generator or build_generator(settings)
    connection = ConnectionManager(transport, ready_timeout=settings.ready_timeout, strict=True)
    loop = ResponderLoop(
        connection,
        ai,
        request_topic=settings.request_topic,
        response_topic=settings.response_topic,
        subscribe_attempts=settings.subscribe_attempts,
        subscribe_backoff=settings.subscribe_backoff,
        status_interval=settings.status_interval,
    )

    stop = stop_event or asyncio.Event()
    event_loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            event_loop.add_signal_handler(sig, stop.set)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            pass  # not supported on this platform/thread

    starting = asyncio.ensure_future(loop.start())
    stopping = asyncio.ensure_future(stop.wait())
    try:
        await asyncio.wait({starting, stopping}, return_when=asyncio.FIRST_COMPLETED)
        if not starting.done():
            # Interrupted while still bootstrapping.
            logger.info("Stop requested during startup")
            starting.cancel()
            await asyncio.gather(starting, return_exceptions=True)
            await loop.stop()
            return 0
        try:
            starting.result()
        except ConnectionError as e:
            logger.critical(f"Failed to initialize responder: {e}")
            await connection.close()
            return 1
        await stopping
        await loop.stop()
        return 0
    finally:
        stopping.cancel()
        for sig in installed:
            event_loop.remove_signal_handler(sig)
        if isinstance(ai, AIService):
            await ai.close()
