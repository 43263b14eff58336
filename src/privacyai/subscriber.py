"""
Subscriber — receives envelopes on a topic and dispatches them by kind.

One transport registration per topic. The handler is looked up at dispatch
time, so re-subscribing only affects messages that arrive afterwards.
Coroutine handlers run as tasks; the next inbound message is never held
back by a slow handler.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Union

from privacyai.connection import ConnectionManager
from privacyai.errors import EnvelopeError, SubscriptionError
from privacyai.models.envelope import Envelope, MessageKind
from privacyai.transport.envelope import decode_envelope

logger = logging.getLogger(__name__)

EnvelopeHandler = Callable[[Envelope], Union[None, Awaitable[None]]]


class Subscriber:
    def __init__(self, connection: ConnectionManager):
        self._connection = connection
        self._handlers: dict[str, tuple[MessageKind, EnvelopeHandler]] = {}
        self._registered: set[str] = set()
        self._tasks: set[asyncio.Task[Any]] = set()
        self.dropped = 0

    def is_subscribed(self, topic: str) -> bool:
        return topic in self._registered

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def subscribe(self, topic: str, kind: MessageKind, handler: EnvelopeHandler) -> None:
        """Route ``kind`` envelopes on ``topic`` to ``handler``. Raises SubscriptionError."""
        if not self._connection.connected:
            raise SubscriptionError(
                f"Cannot subscribe while {self._connection.status.value}", topic=topic,
            )
        if topic in self._registered:
            self._handlers[topic] = (kind, handler)
            logger.info(f"Replaced handler for {topic}")
            return

        def on_message(payload: bytes) -> None:
            self._dispatch(topic, payload)

        await self._connection.transport.subscribe(topic, on_message)
        self._handlers[topic] = (kind, handler)
        self._registered.add(topic)
        logger.info(f"Subscribed to {topic} ({kind.value} messages)")

    def _dispatch(self, topic: str, payload: bytes) -> None:
        entry = self._handlers.get(topic)
        if entry is None:
            return
        kind, handler = entry

        try:
            envelope = decode_envelope(payload)
        except EnvelopeError as e:
            self.dropped += 1
            logger.warning(f"Dropping malformed message on {topic}: {e}")
            return

        if envelope.kind != kind:
            logger.debug(f"Ignoring {envelope.kind.value} message on {topic}")
            return

        try:
            result = handler(envelope)
        except Exception:
            logger.exception(f"Handler for {topic} failed on message {envelope.message_id}")
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: "asyncio.Task[Any]") -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Handler task failed: {task.exception()!r}")

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait (best effort) for in-flight handler tasks."""
        if not self._tasks:
            return
        done, pending = await asyncio.wait(list(self._tasks), timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} handler tasks still running at shutdown")

    def clear(self) -> None:
        self._handlers.clear()
        self._registered.clear()
