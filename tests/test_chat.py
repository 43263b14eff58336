"""Chat client: sessions, sending, fallback, and end-to-end relay scenarios."""

import asyncio

import pytest

from conftest import StaticGenerator, wait_for
from privacyai.chat import ChatClient
from privacyai.connection import ConnectionManager
from privacyai.models.status import ConnectionStatus
from privacyai.responder import ResponderLoop
from privacyai.transport.envelope import build_request, build_response, encode_envelope
from privacyai.transport.memory import InMemoryNetwork, InMemoryTransport

JITTER = (0.01, 0.03)


def make_client(transport, **kwargs) -> ChatClient:
    kwargs.setdefault("ready_timeout", 0.5)
    kwargs.setdefault("fallback_jitter", JITTER)
    return ChatClient(transport, **kwargs)


def make_responder(network: InMemoryNetwork, generator) -> ResponderLoop:
    return ResponderLoop(
        ConnectionManager(InMemoryTransport(network, name="responder"), ready_timeout=1.0, strict=True),
        generator,
        request_topic="/privacyai/1/chat-request/proto",
        response_topic="/privacyai/1/chat-response/proto",
        status_interval=0,
    )


class TestSessions:
    def test_create_select_delete(self, node):
        client = make_client(node)
        first = client.create_session()
        second = client.create_session()
        assert client.current_session_id == second.id
        assert [s.id for s in client.sessions] == [second.id, first.id]
        assert first.id != second.id

        client.select_session(first.id)
        assert client.current_session.id == first.id

        client.delete_session(first.id)
        assert client.current_session_id == second.id
        assert client.messages(first.id) == []

        with pytest.raises(KeyError):
            client.select_session(first.id)

    @pytest.mark.asyncio
    async def test_blank_or_sessionless_send_is_noop(self, node):
        client = make_client(node)
        assert await client.send_message("hello") is None
        client.create_session()
        assert await client.send_message("   ") is None
        assert client.messages() == []

    @pytest.mark.asyncio
    async def test_first_message_sets_title(self, node):
        client = make_client(node)
        session = client.create_session()
        await client.send_message("x" * 60)
        await client.send_message("second")
        assert session.title == "x" * 50 + "..."
        client.fallback.cancel_all()


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_hello_round_trip(self, network):
        generator = StaticGenerator("Hi there")
        responder = make_responder(network, generator)
        client = make_client(InMemoryTransport(network, name="client"))

        await asyncio.gather(responder.start(), client.start())
        assert client.status == ConnectionStatus.CONNECTED
        session = client.create_session()

        user = await client.send_message("Hello")
        assert client.is_loading

        await wait_for(lambda: len(client.messages(session.id)) == 2)
        reply = client.messages(session.id)[1]
        assert reply.role == "assistant"
        assert reply.content == "Hi there"
        assert reply.session_id == session.id
        assert reply.simulated is False
        assert reply.reply_to == user.id
        assert not client.is_loading
        assert generator.prompts == ["Hello"]

        await asyncio.sleep(0.05)
        assert len(client.messages(session.id)) == 2  # no fallback after a successful send

        await client.stop()
        await responder.stop()

    @pytest.mark.asyncio
    async def test_stream_yields_in_order(self, network):
        responder = make_responder(network, StaticGenerator("pong"))
        client = make_client(InMemoryTransport(network, name="client"))
        await asyncio.gather(responder.start(), client.start())
        session = client.create_session()

        collected = []

        async def consume():
            async for message in client.stream(session.id):
                collected.append(message)
                if len(collected) == 2:
                    return

        consumer = asyncio.ensure_future(consume())
        await asyncio.sleep(0)
        await client.send_message("ping")
        await asyncio.wait_for(consumer, 2.0)

        assert [(m.role, m.content) for m in collected] == [("user", "ping"), ("assistant", "pong")]
        await client.stop()
        await responder.stop()

    @pytest.mark.asyncio
    async def test_response_for_unknown_session_is_dropped(self, network, peer):
        await peer.connect()
        transport = InMemoryTransport(network, name="client")
        client = make_client(transport)
        await client.start()
        session = client.create_session()

        orphan = build_response(build_request("gone", "q"), "a")
        transport.inject(client.response_topic, encode_envelope(orphan))
        transport.inject(client.response_topic, encode_envelope(build_request(session.id, "not a reply")))

        assert client.messages(session.id) == []
        await client.stop()


class TestFallback:
    @pytest.mark.asyncio
    async def test_zero_peers_produces_one_simulated_reply(self, network, peer):
        await peer.connect()
        transport = InMemoryTransport(network, name="client")
        client = make_client(transport)
        await client.start()
        session = client.create_session()
        await peer.close()  # last peer leaves after connect

        await client.send_message("Hello")
        assert transport.published == []

        await asyncio.sleep(JITTER[1] + 0.05)
        messages = client.messages(session.id)
        assert [m.role for m in messages] == ["user", "assistant"]
        assert messages[1].simulated
        assert "degraded" in messages[1].content
        assert not client.is_loading
        await client.stop()

    @pytest.mark.asyncio
    async def test_not_connected_produces_simulated_reply(self, node):
        client = make_client(node, ready_timeout=0.02)
        assert await client.start() == ConnectionStatus.DEGRADED
        session = client.create_session()

        await client.send_message("Hello")
        await wait_for(lambda: len(client.messages(session.id)) == 2)

        reply = client.messages(session.id)[1]
        assert reply.simulated
        assert "not connected" in reply.content
        await client.stop()

    @pytest.mark.asyncio
    async def test_deleted_session_gets_no_fallback(self, node):
        client = make_client(node, ready_timeout=0.02, fallback_jitter=(0.05, 0.05))
        await client.start()
        doomed = client.create_session()
        await client.send_message("Hello")
        keeper = client.create_session()

        client.delete_session(doomed.id)
        await asyncio.sleep(0.1)

        assert client.messages(doomed.id) == []
        assert client.messages(keeper.id) == []
        assert client.fallback.pending() == 0
        await client.stop()

    @pytest.mark.asyncio
    async def test_switched_session_discards_fallback(self, node):
        client = make_client(node, ready_timeout=0.02, fallback_jitter=(0.05, 0.05))
        await client.start()
        other = client.create_session()
        active = client.create_session()
        await client.send_message("Hello")

        client.select_session(other.id)
        await asyncio.sleep(0.1)

        assert [m.role for m in client.messages(active.id)] == ["user"]
        await client.stop()

    @pytest.mark.asyncio
    async def test_response_timeout_resolves_send(self, network, peer):
        await peer.connect()  # a peer that never answers
        client = make_client(InMemoryTransport(network, name="client"), response_timeout=0.02)
        await client.start()
        session = client.create_session()

        await client.send_message("Hello")
        await wait_for(lambda: len(client.messages(session.id)) == 2)

        reply = client.messages(session.id)[1]
        assert reply.simulated
        assert "No responder answered" in reply.content
        await client.stop()

    @pytest.mark.asyncio
    async def test_each_send_resolves_when_only_one_is_answered(self, network, peer):
        await peer.connect()
        transport = InMemoryTransport(network, name="client")
        client = make_client(transport, response_timeout=0.1)
        await client.start()
        session = client.create_session()

        first = await client.send_message("first")
        await client.send_message("second")
        answer = build_response(build_request(session.id, "first", message_id=first.id), "A1")
        transport.inject(client.response_topic, encode_envelope(answer))

        await wait_for(lambda: len(client.messages(session.id)) == 4)
        replies = [m for m in client.messages(session.id) if m.role == "assistant"]
        assert replies[0].content == "A1"
        assert replies[0].reply_to == first.id
        assert replies[1].simulated
        assert "No responder answered" in replies[1].content
        assert '"second"' in replies[1].content

        await asyncio.sleep(0.15)
        assert len(client.messages(session.id)) == 4
        await client.stop()

    @pytest.mark.asyncio
    async def test_uncorrelated_response_clears_oldest_pending_send(self, network, peer):
        await peer.connect()
        transport = InMemoryTransport(network, name="client")
        client = make_client(transport, response_timeout=0.1)
        await client.start()
        session = client.create_session()

        await client.send_message("first")
        await client.send_message("second")
        answer = build_response(build_request(session.id, "first"), "A1").model_copy(update={"correlation_id": None})
        transport.inject(client.response_topic, encode_envelope(answer))

        await wait_for(lambda: len(client.messages(session.id)) == 4)
        fallback = client.messages(session.id)[3]
        assert fallback.simulated
        assert '"second"' in fallback.content
        await client.stop()

    @pytest.mark.asyncio
    async def test_late_real_response_is_not_suppressed(self, network, peer):
        await peer.connect()
        transport = InMemoryTransport(network, name="client", reject_publish=True)
        client = make_client(transport)
        await client.start()
        session = client.create_session()

        await client.send_message("Hello")
        await wait_for(lambda: len(client.messages(session.id)) == 2)
        late = build_response(build_request(session.id, "Hello"), "real answer")
        transport.inject(client.response_topic, encode_envelope(late))

        contents = [m.content for m in client.messages(session.id)]
        assert len(contents) == 3
        assert contents[2] == "real answer"
        assert client.messages(session.id)[1].simulated
        await client.stop()
