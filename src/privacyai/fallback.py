"""
Fallback simulator — produces a clearly labelled local reply when a send
could not go through the relay, so the chat never waits forever.

Each trigger schedules one task keyed by session. The target session is
re-checked when the task fires; the message is dropped if the session is
gone or no longer current.
"""

import asyncio
import logging
import random
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from privacyai.models.chat import ChatMessage
from privacyai.transport.envelope import new_message_id, now_iso

JITTER_MIN_S = 1.0
JITTER_MAX_S = 2.5

logger = logging.getLogger(__name__)


class FallbackReason(str, Enum):
    PUBLISH_FAILED = "publish_failed"
    NOT_CONNECTED = "not_connected"
    RESPONSE_TIMEOUT = "response_timeout"


FALLBACK_TEXT = {
    FallbackReason.PUBLISH_FAILED: (
        "Sorry, I couldn't deliver your message over the relay network. "
        "This is a simulated response (degraded delivery)."
    ),
    FallbackReason.NOT_CONNECTED: (
        "Relay network not connected. This is a simulated response (degraded delivery). "
        "Please check your connection."
    ),
    FallbackReason.RESPONSE_TIMEOUT: (
        "No responder answered in time. This is a simulated response (degraded delivery)."
    ),
}


def fallback_content(reason: FallbackReason, original_content: str) -> str:
    quoted = original_content if len(original_content) <= 50 else original_content[:50] + "..."
    return f"[simulated] {FALLBACK_TEXT[reason]} Your message: \"{quoted}\""


class FallbackSimulator:
    def __init__(
        self,
        deliver: Callable[[ChatMessage], None],
        is_valid_target: Callable[[str], bool],
        jitter: tuple[float, float] = (JITTER_MIN_S, JITTER_MAX_S),
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        low, high = jitter
        if low < 0 or high < low:
            raise ValueError(f"Invalid jitter window: {jitter}")
        self._deliver = deliver
        self._is_valid_target = is_valid_target
        self._jitter = (low, high)
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._pending: dict[str, set[asyncio.Task[Optional[ChatMessage]]]] = {}

    def pending(self, session_id: Optional[str] = None) -> int:
        if session_id is not None:
            return len(self._pending.get(session_id, ()))
        return sum(len(tasks) for tasks in self._pending.values())

    def trigger(
        self, session_id: str, original_content: str, reason: FallbackReason,
    ) -> "asyncio.Task[Optional[ChatMessage]]":
        """Schedule exactly one simulated reply for ``session_id`` after the jitter delay."""
        delay = self._rng.uniform(*self._jitter)
        logger.info(f"Scheduling simulated reply for session {session_id} in {delay:.2f}s ({reason.value})")
        task = asyncio.ensure_future(self._fire(session_id, original_content, reason, delay))
        self._pending.setdefault(session_id, set()).add(task)
        task.add_done_callback(lambda t: self._forget(session_id, t))
        return task

    async def _fire(
        self, session_id: str, original_content: str, reason: FallbackReason, delay: float,
    ) -> Optional[ChatMessage]:
        await self._sleep(delay)
        if not self._is_valid_target(session_id):
            logger.info(f"Discarding simulated reply: session {session_id} is no longer the target")
            return None
        message = ChatMessage(
            id=new_message_id(),
            session_id=session_id,
            content=fallback_content(reason, original_content),
            role="assistant",
            timestamp=now_iso(),
            simulated=True,
        )
        self._deliver(message)
        return message

    def cancel(self, session_id: str) -> int:
        """Cancel pending simulated replies for a session. Returns how many were cancelled."""
        tasks = self._pending.pop(session_id, set())
        for task in tasks:
            task.cancel()
        if tasks:
            logger.info(f"Cancelled {len(tasks)} pending simulated replies for session {session_id}")
        return len(tasks)

    def cancel_all(self) -> None:
        for session_id in list(self._pending):
            self.cancel(session_id)

    def _forget(self, session_id: str, task: "asyncio.Task[Optional[ChatMessage]]") -> None:
        tasks = self._pending.get(session_id)
        if tasks is None:
            return
        tasks.discard(task)
        if not tasks:
            del self._pending[session_id]
