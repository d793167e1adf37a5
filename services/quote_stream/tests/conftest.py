"""
Pytest configuration and fixtures for quote stream tests.
"""

import pytest

from services.quote_stream.event_log import EventLog
from services.quote_stream.session import QuoteStreamSession
from services.quote_stream.subscription_controller import SubscriptionController
from services.quote_stream.ws_client import QuoteStreamConnection
from services.quote_stream.tests.fakes import STREAM_URL, FakeConnector



@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def connection(connector) -> QuoteStreamConnection:
    """Connection wired to the fake transport, not yet opened."""
    return QuoteStreamConnection(STREAM_URL, connector=connector)


@pytest.fixture
def event_log() -> EventLog:
    return EventLog()


@pytest.fixture
def controller(connection, event_log) -> SubscriptionController:
    return SubscriptionController(connection, event_log)


@pytest.fixture
def session(connector) -> QuoteStreamSession:
    """Unmounted session; each mount gets a fresh fake transport."""
    return QuoteStreamSession(
        lambda: QuoteStreamConnection(STREAM_URL, connector=connector),
        raw_input="AAPL,MSFT"
    )
