import asyncio
import json
import logging
import os
from typing import Any, Dict, List

import pytest
from websockets.exceptions import ConnectionClosed

from voicerelay.config.models import ApplicationConfig, MockConfig, OpenAIConfig, RelayConfig

"""
Pytest configuration file for the voicerelay test suite.

This file contains fixtures that are shared across multiple test files.
"""


class FakeUpstreamWebSocket:
    """Scriptable upstream connection: tests push server events and inspect sends."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.closed = False
        self.close_calls = 0
        self._queue: asyncio.Queue = asyncio.Queue()

    def push(self, event) -> None:
        """Queue one inbound message (dicts are JSON-encoded)."""
        self._queue.put_nowait(event if isinstance(event, (str, bytes)) else json.dumps(event))

    def push_session_created(self, session_id: str = "sess_test") -> None:
        self.push({"type": "session.created", "session": {"id": session_id, "voice": "shimmer"}})

    def drop(self) -> None:
        """End the inbound stream as if the server went away."""
        self.closed = True
        self._queue.put_nowait(None)

    async def send(self, message: str) -> None:
        if self.closed:
            raise ConnectionClosed(None, None)
        self.sent.append(json.loads(message))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.close_calls += 1
        if not self.closed:
            self.closed = True
            self._queue.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        message = await self._queue.get()
        if message is None:
            raise StopAsyncIteration
        return message


class FakeConnector:
    """Connector handing out FakeUpstreamWebSocket instances and recording dials."""

    def __init__(self, delay: float = 0.0, error: Exception = None, auto_session: bool = True):
        self.delay = delay
        self.error = error
        self.auto_session = auto_session
        self.sockets: List[FakeUpstreamWebSocket] = []
        self.calls: List[Dict[str, Any]] = []

    async def __call__(self, url: str, headers: Dict[str, str]) -> FakeUpstreamWebSocket:
        self.calls.append({"url": url, "headers": headers})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        ws = FakeUpstreamWebSocket()
        if self.auto_session:
            ws.push_session_created(f"sess_{len(self.sockets) + 1}")
        self.sockets.append(ws)
        return ws

    @property
    def last(self) -> FakeUpstreamWebSocket:
        return self.sockets[-1]


async def settle(predicate, timeout: float = 1.0, interval: float = 0.005) -> None:
    """Wait until predicate() is true, failing the test on timeout."""

    async def _wait():
        while not predicate():
            await asyncio.sleep(interval)

    await asyncio.wait_for(_wait(), timeout)


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)
    yield


@pytest.fixture(autouse=True)
def skip_integration_when_no_api_key(request):
    if request.node.get_closest_marker("integration") and not os.environ.get("OPENAI_API_KEY"):
        pytest.skip("Skipping integration tests: OPENAI_API_KEY not set")


@pytest.fixture
def openai_config():
    return OpenAIConfig(api_key="test-key", base_url="wss://upstream.test")


@pytest.fixture
def relay_config():
    return RelayConfig(connect_timeout=0.5, instructions="Be a hotel agent.")


@pytest.fixture
def fake_connector():
    return FakeConnector()


@pytest.fixture
def mock_app_config():
    """Application config running against the in-process mock upstream."""
    return ApplicationConfig(mock=MockConfig(enabled=True, fragments_per_response=3))


@pytest.fixture
def make_connector():
    """Factory for connectors with a delay, an error or no session.created."""
    return FakeConnector


@pytest.fixture
def wait_until():
    return settle
