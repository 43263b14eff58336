"""
Chat client — sessions, send_message(), and response intake over the relay.

Each send resolves in bounded time: either a response arrives on the
response topic, or the fallback simulator appends a labelled simulated
reply. Responses are matched to chats by session only.
"""

import asyncio
import logging
from typing import AsyncGenerator, Callable, Optional

from privacyai.connection import CLIENT_READY_TIMEOUT_S, ConnectionManager
from privacyai.errors import PrivacyAIError
from privacyai.fallback import FallbackReason, FallbackSimulator, JITTER_MAX_S, JITTER_MIN_S
from privacyai.models.chat import ChatMessage, ChatSession
from privacyai.models.envelope import Envelope, MessageKind
from privacyai.models.status import ConnectionStatus
from privacyai.publisher import Publisher
from privacyai.settings import DEFAULT_REQUEST_TOPIC, DEFAULT_RESPONSE_TOPIC
from privacyai.subscriber import Subscriber
from privacyai.transport.base import PubSubTransport
from privacyai.transport.envelope import build_request, new_message_id, now_iso

DEFAULT_RESPONSE_TIMEOUT_S = 90.0
TITLE_LENGTH = 50

logger = logging.getLogger(__name__)

MessageListener = Callable[[ChatMessage], None]


class ChatClient:
    def __init__(
        self,
        transport: PubSubTransport,
        request_topic: str = DEFAULT_REQUEST_TOPIC,
        response_topic: str = DEFAULT_RESPONSE_TOPIC,
        ready_timeout: Optional[float] = CLIENT_READY_TIMEOUT_S,
        response_timeout: Optional[float] = DEFAULT_RESPONSE_TIMEOUT_S,
        fallback_jitter: tuple[float, float] = (JITTER_MIN_S, JITTER_MAX_S),
        fallback: Optional[FallbackSimulator] = None,
    ):
        self.request_topic = request_topic
        self.response_topic = response_topic
        self.connection = ConnectionManager(transport, ready_timeout=ready_timeout)
        self._publisher = Publisher(self.connection)
        self._subscriber = Subscriber(self.connection)
        self.fallback = fallback or FallbackSimulator(
            deliver=self._append, is_valid_target=self._is_valid_target, jitter=fallback_jitter,
        )
        self._response_timeout = response_timeout
        self._timeouts: dict[str, tuple[str, asyncio.TimerHandle]] = {}

        self.sessions: list[ChatSession] = []
        self.current_session_id: Optional[str] = None
        self._messages: dict[str, list[ChatMessage]] = {}
        self._listeners: list[MessageListener] = []
        self._loading: set[str] = set()

    # -- Connection ------------------------------------------------------------

    @property
    def status(self) -> ConnectionStatus:
        return self.connection.status

    @property
    def connected(self) -> bool:
        return self.connection.connected

    async def start(self) -> ConnectionStatus:
        """Connect and subscribe to responses. Never raises on transport failure."""
        status = await self.connection.connect()
        if status == ConnectionStatus.CONNECTED and not self._subscriber.is_subscribed(self.response_topic):
            try:
                await self._subscriber.subscribe(self.response_topic, MessageKind.RESPONSE, self._on_response)
            except (PrivacyAIError, OSError) as e:
                logger.error(f"Failed to subscribe to responses: {e}")
        return self.connection.status

    async def stop(self) -> None:
        self.fallback.cancel_all()
        for _, handle in self._timeouts.values():
            handle.cancel()
        self._timeouts.clear()
        self._subscriber.clear()
        await self.connection.close()

    # -- Sessions --------------------------------------------------------------

    def create_session(self) -> ChatSession:
        now = now_iso()
        session = ChatSession(id=new_message_id(), created_at=now, updated_at=now)
        self.sessions.insert(0, session)
        self._messages[session.id] = []
        self.current_session_id = session.id
        return session

    def get_session(self, session_id: str) -> Optional[ChatSession]:
        for session in self.sessions:
            if session.id == session_id:
                return session
        return None

    def select_session(self, session_id: str) -> None:
        if self.get_session(session_id) is None:
            raise KeyError(session_id)
        previous = self.current_session_id
        if previous and previous != session_id:
            self.fallback.cancel(previous)
        self.current_session_id = session_id

    def delete_session(self, session_id: str) -> None:
        self.fallback.cancel(session_id)
        self._clear_timeouts(session_id)
        self._loading.discard(session_id)
        self.sessions = [s for s in self.sessions if s.id != session_id]
        self._messages.pop(session_id, None)
        if self.current_session_id == session_id:
            self.current_session_id = self.sessions[0].id if self.sessions else None

    @property
    def current_session(self) -> Optional[ChatSession]:
        if self.current_session_id is None:
            return None
        return self.get_session(self.current_session_id)

    def messages(self, session_id: Optional[str] = None) -> list[ChatMessage]:
        sid = session_id or self.current_session_id
        if sid is None:
            return []
        return list(self._messages.get(sid, []))

    @property
    def is_loading(self) -> bool:
        return self.current_session_id in self._loading

    # -- Messages --------------------------------------------------------------

    def add_listener(self, listener: MessageListener) -> Callable[[], None]:
        """Add a listener called for every appended message. Returns a cleanup function."""
        self._listeners.append(listener)
        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass
        return remove

    async def stream(self, session_id: str) -> AsyncGenerator[ChatMessage, None]:
        """Yield messages appended to ``session_id`` in order, until the session is deleted."""
        queue: asyncio.Queue[ChatMessage] = asyncio.Queue()

        def _listener(message: ChatMessage) -> None:
            if message.session_id == session_id:
                queue.put_nowait(message)

        remove = self.add_listener(_listener)
        try:
            while self.get_session(session_id) is not None:
                try:
                    yield await asyncio.wait_for(queue.get(), timeout=1.0)
                except asyncio.TimeoutError:
                    continue
        finally:
            remove()

    async def send_message(self, content: str) -> Optional[ChatMessage]:
        """Send ``content`` in the current session. Returns the user message, or None."""
        session_id = self.current_session_id
        text = content.strip()
        if session_id is None or not text:
            return None

        user_message = ChatMessage(
            id=new_message_id(), session_id=session_id, content=text, role="user", timestamp=now_iso(),
        )
        session = self.get_session(session_id)
        if session is not None and not self._messages.get(session_id):
            session.title = text[:TITLE_LENGTH] + ("..." if len(text) > TITLE_LENGTH else "")
            session.updated_at = user_message.timestamp
        self._append(user_message)
        self._loading.add(session_id)

        if not self.connection.connected:
            logger.info("Relay not connected; falling back to simulation")
            self.fallback.trigger(session_id, text, FallbackReason.NOT_CONNECTED)
            return user_message

        request = build_request(session_id, text, message_id=user_message.id)
        if not await self._publisher.publish(self.request_topic, request):
            logger.info("Relay send failed; falling back to simulation")
            self.fallback.trigger(session_id, text, FallbackReason.PUBLISH_FAILED)
            return user_message

        self._arm_timeout(session_id, user_message.id, text)
        return user_message

    def _on_response(self, envelope: Envelope) -> None:
        session_id = envelope.session_id
        if session_id not in self._messages:
            logger.info(f"Dropping response for unknown session {session_id}")
            return
        self._clear_timeout(session_id, envelope.correlation_id)
        self._append(ChatMessage(
            id=envelope.message_id,
            session_id=session_id,
            content=envelope.content,
            role="assistant",
            timestamp=envelope.timestamp,
            reply_to=envelope.correlation_id,
        ))

    def _append(self, message: ChatMessage) -> None:
        messages = self._messages.get(message.session_id)
        if messages is None:
            return
        messages.append(message)
        if message.role == "assistant":
            self._loading.discard(message.session_id)
        for listener in list(self._listeners):
            listener(message)

    def _is_valid_target(self, session_id: str) -> bool:
        return session_id in self._messages and session_id == self.current_session_id

    def _arm_timeout(self, session_id: str, request_id: str, text: str) -> None:
        if self._response_timeout is None:
            return

        def _expired() -> None:
            self._timeouts.pop(request_id, None)
            logger.warning(f"No response to {request_id} in session {session_id} after {self._response_timeout:g}s")
            self.fallback.trigger(session_id, text, FallbackReason.RESPONSE_TIMEOUT)

        loop = asyncio.get_running_loop()
        self._timeouts[request_id] = (session_id, loop.call_later(self._response_timeout, _expired))

    def _clear_timeout(self, session_id: str, request_id: Optional[str] = None) -> None:
        """Clear the timer for ``request_id``, or the session's oldest one when the response is uncorrelated."""
        if request_id is None:
            request_id = next((rid for rid, (sid, _) in self._timeouts.items() if sid == session_id), None)
        entry = self._timeouts.get(request_id) if request_id is not None else None
        if entry and entry[0] == session_id:
            del self._timeouts[request_id]
            entry[1].cancel()

    def _clear_timeouts(self, session_id: str) -> None:
        for request_id in [rid for rid, (sid, _) in self._timeouts.items() if sid == session_id]:
            self._timeouts.pop(request_id)[1].cancel()
