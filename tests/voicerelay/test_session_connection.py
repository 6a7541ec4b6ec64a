"""Unit tests for SessionConnection.

Covers the connection lifecycle (single dial under concurrency, timeouts,
refusals, close from every state), the session handshake, the send gate, and
how inbound events are routed to the poll queue or the audio sequencer.
"""

import asyncio

import pytest

from voicerelay.exceptions import ConnectTimeout, NotReady, TransportError
from voicerelay.models.openai_api import ResponseCreateEvent
from voicerelay.models.relay_state import ConnectionState
from voicerelay.session_connection import SessionConnection


@pytest.fixture
def connection(openai_config, relay_config, fake_connector):
    return SessionConnection(openai_config, relay_config, connector=fake_connector)


class TestConnect:
    """Connection establishment."""

    @pytest.mark.asyncio
    async def test_connect_opens_and_sends_session_update(
        self, connection, fake_connector, wait_until
    ):
        await connection.connect()
        assert connection.state == ConnectionState.OPEN

        await wait_until(lambda: connection.session_ready)
        ws = fake_connector.last
        await wait_until(lambda: ws.sent)

        assert ws.sent[0]["type"] == "session.update"
        assert ws.sent[0]["session"] == {"instructions": "Be a hotel agent."}
        assert connection.session.id == "sess_1"
        assert connection.is_ready

    @pytest.mark.asyncio
    async def test_connect_uses_url_and_auth_headers(self, connection, fake_connector):
        await connection.connect()

        call = fake_connector.calls[0]
        assert call["url"].startswith("wss://upstream.test/v1/realtime?model=")
        assert call["headers"]["Authorization"] == "Bearer test-key"

    @pytest.mark.asyncio
    async def test_connect_when_open_is_noop(self, connection, fake_connector):
        await connection.connect()
        await connection.connect()

        assert connection.dial_count == 1
        assert len(fake_connector.calls) == 1

    @pytest.mark.asyncio
    async def test_concurrent_connects_share_one_dial(
        self, openai_config, relay_config, make_connector
    ):
        connector = make_connector(delay=0.05)
        connection = SessionConnection(openai_config, relay_config, connector=connector)

        await asyncio.gather(*(connection.connect() for _ in range(5)))

        assert connection.dial_count == 1
        assert len(connector.calls) == 1
        assert connection.state == ConnectionState.OPEN

    @pytest.mark.asyncio
    async def test_connect_timeout_returns_to_idle(
        self, openai_config, relay_config, make_connector
    ):
        relay_config.connect_timeout = 0.05
        connection = SessionConnection(
            openai_config, relay_config, connector=make_connector(delay=1.0)
        )

        with pytest.raises(ConnectTimeout):
            await connection.connect()

        assert connection.state == ConnectionState.IDLE
        assert connection.connect_failures == 1
        assert not connection.session_ready

    @pytest.mark.asyncio
    async def test_joined_connects_all_see_the_timeout(
        self, openai_config, relay_config, make_connector
    ):
        relay_config.connect_timeout = 0.05
        connection = SessionConnection(
            openai_config, relay_config, connector=make_connector(delay=1.0)
        )

        results = await asyncio.gather(
            *(connection.connect() for _ in range(3)), return_exceptions=True
        )

        assert all(isinstance(r, ConnectTimeout) for r in results)
        assert connection.dial_count == 1

    @pytest.mark.asyncio
    async def test_refused_connection_raises_transport_error(
        self, openai_config, relay_config, make_connector
    ):
        connector = make_connector(error=OSError("connection refused"))
        connection = SessionConnection(openai_config, relay_config, connector=connector)

        with pytest.raises(TransportError):
            await connection.connect()
        assert connection.state == ConnectionState.IDLE

        # The next attempt dials again
        connector.error = None
        await connection.connect()
        assert connection.state == ConnectionState.OPEN
        assert connection.dial_count == 2

    @pytest.mark.asyncio
    async def test_no_auth_headers_without_api_key(self, relay_config, fake_connector):
        from voicerelay.config.models import OpenAIConfig

        connection = SessionConnection(
            OpenAIConfig(api_key=None), relay_config, connector=fake_connector
        )
        await connection.connect()

        assert fake_connector.calls[0]["headers"] == {}


class TestSend:
    """The send gate."""

    @pytest.mark.asyncio
    async def test_send_before_connect_is_not_ready(self, connection):
        with pytest.raises(NotReady):
            await connection.send({"type": "response.create"})

    @pytest.mark.asyncio
    async def test_send_before_session_created_is_not_ready(
        self, openai_config, relay_config, make_connector, wait_until
    ):
        connector = make_connector(auto_session=False)
        connection = SessionConnection(openai_config, relay_config, connector=connector)
        await connection.connect()

        with pytest.raises(NotReady):
            await connection.send({"type": "response.create"})
        assert connector.last.sent == []

        connector.last.push_session_created()
        await wait_until(lambda: connection.session_ready)
        await connection.send({"type": "response.create"})

        assert [e["type"] for e in connector.last.sent] == ["session.update", "response.create"]

    @pytest.mark.asyncio
    async def test_send_accepts_typed_events(self, connection, fake_connector, wait_until):
        await connection.connect()
        await wait_until(lambda: connection.session_ready)

        await connection.send(ResponseCreateEvent())

        assert fake_connector.last.sent[-1] == {"type": "response.create"}
        assert connection.messages_sent == 2

    @pytest.mark.asyncio
    async def test_send_forwards_payload_verbatim(self, connection, fake_connector, wait_until):
        await connection.connect()
        await wait_until(lambda: connection.session_ready)
        event = {"type": "conversation.item.create", "item": {"type": "message", "x": [1, 2]}}

        await connection.send(event)

        assert fake_connector.last.sent[-1] == event

    @pytest.mark.asyncio
    async def test_send_on_closed_transport_raises_transport_error(
        self, connection, fake_connector, wait_until
    ):
        await connection.connect()
        await wait_until(lambda: connection.session_ready)
        fake_connector.last.closed = True

        with pytest.raises(TransportError):
            await connection.send({"type": "response.create"})


class TestInbound:
    """Routing of inbound events."""

    @pytest.mark.asyncio
    async def test_unrecognized_events_are_queued_verbatim(
        self, connection, fake_connector, wait_until
    ):
        await connection.connect()
        await wait_until(lambda: connection.session_ready)
        event = {"type": "response.done", "response": {"id": "resp_1", "status": "completed"}}

        fake_connector.last.push(event)
        await wait_until(lambda: connection.get_stats()["pending_events"] == 1)

        snapshot = await connection.take_snapshot()
        assert snapshot.is_session_created is True
        assert snapshot.responses == [event]

        again = await connection.take_snapshot()
        assert again.responses == []

    @pytest.mark.asyncio
    async def test_events_keep_arrival_order(self, connection, fake_connector, wait_until):
        await connection.connect()
        await wait_until(lambda: connection.session_ready)
        ws = fake_connector.last
        for i in range(5):
            ws.push({"type": "response.audio_transcript.delta", "delta": str(i)})

        await wait_until(lambda: connection.get_stats()["pending_events"] == 5)

        snapshot = await connection.take_snapshot()
        assert [e["delta"] for e in snapshot.responses] == ["0", "1", "2", "3", "4"]

    @pytest.mark.asyncio
    async def test_audio_goes_to_sequencer_not_poll_queue(
        self, connection, fake_connector, wait_until
    ):
        await connection.connect()
        await wait_until(lambda: connection.session_ready)
        ws = fake_connector.last
        ws.push({"type": "response.audio.delta", "response_id": "r1", "delta": "AAA="})
        ws.push({"type": "response.audio.delta", "response_id": "r1", "delta": "BBB="})
        ws.push({"type": "response.audio.done", "response_id": "r1"})

        await wait_until(lambda: connection.sequencer.get_stats()["completed_pending"] == 1)

        snapshot = await connection.take_snapshot()
        assert snapshot.responses == []
        drained = await connection.drain_audio()
        assert drained.response_id == "r1"
        assert drained.fragments == ["AAA=", "BBB="]
        assert drained.done is True

    @pytest.mark.asyncio
    async def test_malformed_message_is_dropped(self, connection, fake_connector, wait_until):
        await connection.connect()
        await wait_until(lambda: connection.session_ready)
        ws = fake_connector.last

        ws.push("{not json")
        ws.push({"no_type": True})
        ws.push({"type": "response.audio.delta", "response_id": "r1"})
        ws.push({"type": "session.updated"})

        await wait_until(lambda: connection.get_stats()["pending_events"] == 1)

        assert connection.malformed_dropped == 3
        assert connection.state == ConnectionState.OPEN
        errors = connection.error_handler.get_error_stats()
        assert errors["error_counts"]["upstream"] == 3

    @pytest.mark.asyncio
    async def test_unexpected_close_clears_session(
        self, connection, fake_connector, wait_until
    ):
        await connection.connect()
        await wait_until(lambda: connection.session_ready)
        ws = fake_connector.last
        ws.push({"type": "session.updated"})
        await wait_until(lambda: connection.get_stats()["pending_events"] == 1)

        ws.drop()
        await wait_until(lambda: connection.state == ConnectionState.IDLE)

        assert connection.unexpected_closes == 1
        assert not connection.session_ready
        snapshot = await connection.take_snapshot()
        assert snapshot.is_session_created is False
        assert snapshot.responses == []
        with pytest.raises(NotReady):
            await connection.send({"type": "response.create"})

        # A later connect dials a fresh session
        await connection.connect()
        await wait_until(lambda: connection.session_ready)
        assert connection.dial_count == 2
        assert connection.session.id == "sess_2"


class TestClose:
    """Closing from every state."""

    @pytest.mark.asyncio
    async def test_close_idle_is_noop(self, connection):
        await connection.close()
        assert connection.state == ConnectionState.IDLE

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, connection, fake_connector, wait_until):
        await connection.connect()
        await wait_until(lambda: connection.session_ready)
        ws = fake_connector.last

        await connection.close()
        await connection.close()

        assert connection.state == ConnectionState.IDLE
        assert ws.close_calls == 1
        assert connection.unexpected_closes == 0
        assert not connection.session_ready

    @pytest.mark.asyncio
    async def test_close_clears_buffers(self, connection, fake_connector, wait_until):
        await connection.connect()
        await wait_until(lambda: connection.session_ready)
        ws = fake_connector.last
        ws.push({"type": "response.audio.delta", "response_id": "r1", "delta": "AAA="})
        ws.push({"type": "session.updated"})
        await wait_until(lambda: connection.get_stats()["pending_events"] == 1)

        await connection.close()

        snapshot = await connection.take_snapshot()
        assert snapshot.responses == []
        drained = await connection.drain_audio()
        assert drained.response_id is None

    @pytest.mark.asyncio
    async def test_close_mid_connect_aborts_attempt(
        self, openai_config, relay_config, make_connector
    ):
        relay_config.connect_timeout = 5.0
        connector = make_connector(delay=1.0)
        connection = SessionConnection(openai_config, relay_config, connector=connector)

        attempt = asyncio.create_task(connection.connect())
        await asyncio.sleep(0.01)
        assert connection.state == ConnectionState.CONNECTING

        await connection.close()

        with pytest.raises(TransportError):
            await attempt
        assert connection.state == ConnectionState.IDLE
        assert connector.sockets == []

        connector.delay = 0
        await connection.connect()
        assert connection.state == ConnectionState.OPEN

    @pytest.mark.asyncio
    async def test_stats_report_state(self, connection, wait_until):
        await connection.connect()
        await wait_until(lambda: connection.session_ready)

        stats = connection.get_stats()

        assert stats["state"] == "open"
        assert stats["session_ready"] is True
        assert stats["session_id"] == "sess_1"
        assert stats["dial_count"] == 1
        assert stats["router"]["has_fallback"] is True
