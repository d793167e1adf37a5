"""
Tests for the quote stream connection state machine.
"""

import asyncio
import ssl

import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK, InvalidURI

from services.quote_stream.ws_client import (
    ConnectionEventKind,
    ConnectionState,
    QuoteStreamConnection,
)
from services.quote_stream.tests.fakes import FakeConnector, drain, wait_until
from shared.config.settings import Settings


def record(connection):
    events = []
    connection.subscribe(events.append)
    return events


def states(events):
    return [e.state for e in events if e.kind is ConnectionEventKind.STATE]


class TestLifecycle:

    def test_initial_state_is_connecting(self, connection):
        assert connection.state is ConnectionState.CONNECTING
        assert not connection.is_open

    @pytest.mark.asyncio
    async def test_handshake_opens(self, connection, connector):
        events = record(connection)
        connection.open()
        await wait_until(lambda: connection.is_open)

        assert states(events) == [ConnectionState.OPEN]
        assert events[0].previous is ConnectionState.CONNECTING
        assert connector.calls[0][0] == "ws://quotes.test/u/quotes/stream"
        await connection.close()

    @pytest.mark.asyncio
    async def test_handshake_failure_is_asynchronous(self):
        connector = FakeConnector(error=OSError("connection refused"))
        connection = QuoteStreamConnection("ws://quotes.test/stream", connector=connector)
        events = record(connection)

        connection.open()  # must not raise
        assert connection.state is ConnectionState.CONNECTING

        await wait_until(lambda: connection.is_closed)
        assert states(events) == [ConnectionState.ERRORED, ConnectionState.CLOSED]
        assert events[0].error == "connection refused"
        assert connection.get_stats()["errors"] == 1

    @pytest.mark.asyncio
    async def test_invalid_uri_errors_then_closes(self):
        connector = FakeConnector(error=InvalidURI("nope", "not a websocket URI"))
        connection = QuoteStreamConnection("nope", connector=connector)
        events = record(connection)
        connection.open()

        await wait_until(lambda: connection.is_closed)
        assert states(events) == [ConnectionState.ERRORED, ConnectionState.CLOSED]

    @pytest.mark.asyncio
    async def test_graceful_remote_close(self, connection, connector):
        events = record(connection)
        connection.open()
        await wait_until(lambda: connection.is_open)

        connector.transport.finish()
        await wait_until(lambda: connection.is_closed)

        assert states(events) == [ConnectionState.OPEN, ConnectionState.CLOSED]

    @pytest.mark.asyncio
    async def test_closed_ok_exception_is_a_clean_close(self, connection, connector):
        events = record(connection)
        connection.open()
        await wait_until(lambda: connection.is_open)

        connector.transport.fail(ConnectionClosedOK(None, None))
        await wait_until(lambda: connection.is_closed)

        assert states(events) == [ConnectionState.OPEN, ConnectionState.CLOSED]

    @pytest.mark.asyncio
    async def test_mid_stream_error_then_closed(self, connection, connector):
        events = record(connection)
        connection.open()
        await wait_until(lambda: connection.is_open)

        connector.transport.fail(ConnectionClosedError(None, None))
        await wait_until(lambda: connection.is_closed)

        assert states(events) == [
            ConnectionState.OPEN, ConnectionState.ERRORED, ConnectionState.CLOSED,
        ]
        assert connector.transport.closed

    @pytest.mark.asyncio
    async def test_no_reconnect_after_close(self, connection, connector):
        connection.open()
        await wait_until(lambda: connection.is_open)
        connector.transport.finish()
        await wait_until(lambda: connection.is_closed)

        await drain()
        assert len(connector.calls) == 1

    @pytest.mark.asyncio
    async def test_second_open_is_rejected(self, connection, connector):
        connection.open()
        connection.open()
        await wait_until(lambda: connection.is_open)

        assert len(connector.calls) == 1
        await connection.close()

    @pytest.mark.asyncio
    async def test_open_after_close_is_rejected(self, connection, connector):
        await connection.close()
        connection.open()
        await drain()

        assert connector.calls == []
        assert connection.is_closed


class TestClose:

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, connection, connector):
        events = record(connection)
        connection.open()
        await wait_until(lambda: connection.is_open)

        await connection.close()
        await connection.close()
        await connection.close()

        assert states(events) == [ConnectionState.OPEN, ConnectionState.CLOSED]
        assert connector.transport.closed

    @pytest.mark.asyncio
    async def test_close_before_open(self, connection):
        events = record(connection)
        await connection.close()

        assert connection.is_closed
        assert states(events) == [ConnectionState.CLOSED]

    @pytest.mark.asyncio
    async def test_close_during_handshake(self, connection, connector):
        connector.gate = asyncio.Event()
        events = record(connection)
        connection.open()
        await drain()

        await connection.close()
        connector.gate.set()
        await drain()

        assert connection.is_closed
        assert states(events) == [ConnectionState.CLOSED]

    @pytest.mark.asyncio
    async def test_no_callbacks_after_close(self, connection, connector):
        events = record(connection)
        connection.open()
        await wait_until(lambda: connection.is_open)
        transport = connector.transport

        await connection.close()
        seen = len(events)

        transport.push("late quote")
        transport.fail(ConnectionClosedError(None, None))
        await drain()

        assert len(events) == seen
        assert connection.get_stats()["messages_received"] == 0


class TestMessages:

    @pytest.mark.asyncio
    async def test_inbound_frames_passed_through_in_order(self, connection, connector):
        events = record(connection)
        connection.open()
        await wait_until(lambda: connection.is_open)

        connector.transport.push('{"AAPL": {"bid": 1}}')
        connector.transport.push("not json at all")
        await wait_until(lambda: len(events) == 3)

        messages = [e.data for e in events if e.kind is ConnectionEventKind.MESSAGE]
        assert messages == ['{"AAPL": {"bid": 1}}', "not json at all"]
        await connection.close()

    @pytest.mark.asyncio
    async def test_binary_frames_are_decoded(self, connection, connector):
        events = record(connection)
        connection.open()
        await wait_until(lambda: connection.is_open)

        connector.transport.push("quote é".encode("utf-8"))
        connector.transport.push(b"\xff\xfe")
        await wait_until(lambda: len(events) == 3)

        assert events[1].data == "quote é"
        assert events[2].data == "\ufffd\ufffd"
        await connection.close()

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_stop_delivery(self, connection, connector):
        def broken(event):
            raise RuntimeError("boom")

        connection.subscribe(broken)
        events = record(connection)
        connection.open()
        await wait_until(lambda: connection.is_open)

        connector.transport.push("tick")
        await wait_until(lambda: len(events) == 2)
        assert events[1].data == "tick"
        await connection.close()

    @pytest.mark.asyncio
    async def test_unsubscribe(self, connection, connector):
        events = []
        unsubscribe = connection.subscribe(events.append)
        unsubscribe()
        connection.open()
        await wait_until(lambda: connection.is_open)

        assert events == []
        await connection.close()


class TestSend:

    @pytest.mark.asyncio
    async def test_send_when_open(self, connection, connector):
        connection.open()
        await wait_until(lambda: connection.is_open)

        assert await connection.send("hello") is True
        assert connector.transport.sent == ["hello"]
        await connection.close()

    @pytest.mark.asyncio
    async def test_send_while_connecting_is_rejected(self, connection, connector):
        assert await connection.send("hello") is False
        assert connection.get_stats()["sends_rejected"] == 1

    @pytest.mark.asyncio
    async def test_send_after_close_is_rejected(self, connection, connector):
        connection.open()
        await wait_until(lambda: connection.is_open)
        await connection.close()

        assert await connection.send("hello") is False
        assert connector.transport.sent == []

    @pytest.mark.asyncio
    async def test_transport_failure_on_send(self, connection, connector):
        events = record(connection)
        connection.open()
        await wait_until(lambda: connection.is_open)
        connector.transport.fail_on_send = ConnectionClosedError(None, None)

        assert await connection.send("hello") is False
        assert states(events) == [
            ConnectionState.OPEN, ConnectionState.ERRORED, ConnectionState.CLOSED,
        ]
        await connection.close()


class TestConnectOptions:

    @pytest.mark.asyncio
    async def test_timeouts_forwarded(self, connector):
        connection = QuoteStreamConnection(
            "ws://quotes.test/stream",
            open_timeout=3.0,
            ping_interval=None,
            connector=connector,
        )
        connection.open()
        await wait_until(lambda: connection.is_open)

        kwargs = connector.calls[0][1]
        assert kwargs["open_timeout"] == 3.0
        assert kwargs["ping_interval"] is None
        assert "ssl" not in kwargs
        await connection.close()

    def test_insecure_wss_uses_unverified_context(self, connector):
        connection = QuoteStreamConnection(
            "wss://127.0.0.1:8000/u/quotes/stream",
            verify_tls=False,
            connector=connector,
        )
        context = connection._connect_kwargs()["ssl"]
        assert context.verify_mode == ssl.CERT_NONE
        assert context.check_hostname is False

    def test_from_settings(self, connector):
        settings = Settings(
            quote_stream_url="ws://localhost:9000/u/quotes/stream",
            quote_stream_open_timeout=2.5,
        )
        connection = QuoteStreamConnection.from_settings(settings, connector=connector)

        assert connection.endpoint_url == "ws://localhost:9000/u/quotes/stream"
        assert connection.open_timeout == 2.5
        assert connection.state is ConnectionState.CONNECTING
