"""
In-process stand-in for the upstream realtime voice service.

``MockRealtimeWebSocket`` implements the slice of the websocket interface the
relay uses (``send``, ``recv``, ``close`` and async iteration) and answers
client events the way the real service does, closely enough to run the relay
without an API key (``VOICERELAY_USE_MOCK=true``) and to drive end-to-end tests.

Behaviour:
- ``session.created`` is emitted as soon as the connection opens
- ``session.update`` is answered with ``session.updated``
- ``input_audio_buffer.commit`` / ``.clear`` are acknowledged
- ``response.create`` produces ``response.created``, a run of
  ``response.audio.delta`` fragments carrying a sine tone, then
  ``response.audio.done`` and ``response.done``
- unknown client events get an ``error`` event

Usage:
    connection = SessionConnection(openai_cfg, relay_cfg, connector=mock_connect())
"""

import asyncio
import json
import logging
import uuid
from typing import Any, Dict, List, Optional

import numpy as np
from websockets.exceptions import ConnectionClosed

from voicerelay.config.constants import DEFAULT_INSTRUCTIONS, DEFAULT_SAMPLE_RATE, LOGGER_NAME, VOICE
from voicerelay.utils.audio_codec import AudioCodec

logger = logging.getLogger(LOGGER_NAME)


class MockRealtimeWebSocket:
    """
    Mock upstream connection.

    Args:
        fragments_per_response: Audio fragments emitted per response.create
        fragment_duration: Seconds of tone per fragment
        tone_hz: Frequency of the generated tone
    """

    def __init__(
        self,
        fragments_per_response: int = 5,
        fragment_duration: float = 0.1,
        tone_hz: float = 440.0,
        connection_id: Optional[str] = None,
    ):
        self.fragments_per_response = fragments_per_response
        self.fragment_duration = fragment_duration
        self.tone_hz = tone_hz
        self.connection_id = connection_id or uuid.uuid4().hex[:8]
        self.closed = False
        self.close_code: Optional[int] = None
        self.received: List[Dict[str, Any]] = []
        self.appended_bytes = 0
        self._queue: asyncio.Queue = asyncio.Queue()
        self._session: Dict[str, Any] = {
            "id": f"sess_{self.connection_id}",
            "object": "realtime.session",
            "voice": VOICE,
            "instructions": DEFAULT_INSTRUCTIONS,
            "modalities": ["text", "audio"],
            "input_audio_format": "pcm16",
            "output_audio_format": "pcm16",
        }
        self._emit({"type": "session.created", "session": dict(self._session)})
        logger.info(f"[MOCK UPSTREAM] Connection {self.connection_id} opened")

    @property
    def open(self) -> bool:
        return not self.closed

    def _emit(self, event: Dict[str, Any]) -> None:
        event.setdefault("event_id", f"event_{uuid.uuid4().hex[:12]}")
        self._queue.put_nowait(json.dumps(event))

    async def send(self, message: str) -> None:
        """Handle one client event."""
        if self.closed:
            raise ConnectionClosed(None, None)

        try:
            event = json.loads(message)
        except ValueError:
            self._error("invalid_json", "Message is not valid JSON")
            return
        self.received.append(event)

        event_type = event.get("type")
        if event_type == "session.update":
            self._session.update(event.get("session") or {})
            self._emit({"type": "session.updated", "session": dict(self._session)})
        elif event_type == "input_audio_buffer.append":
            self.appended_bytes += len(event.get("audio", "")) * 3 // 4
        elif event_type == "input_audio_buffer.commit":
            self._emit(
                {
                    "type": "input_audio_buffer.committed",
                    "item_id": f"item_{uuid.uuid4().hex[:8]}",
                }
            )
            self.appended_bytes = 0
        elif event_type == "input_audio_buffer.clear":
            self._emit({"type": "input_audio_buffer.cleared"})
            self.appended_bytes = 0
        elif event_type == "response.create":
            self._respond()
        else:
            self._error("invalid_request_error", f"Unsupported event type: {event_type}")

    def _respond(self) -> None:
        response_id = f"resp_{uuid.uuid4().hex[:8]}"
        item_id = f"item_{uuid.uuid4().hex[:8]}"
        self._emit(
            {
                "type": "response.created",
                "response": {"id": response_id, "status": "in_progress"},
            }
        )
        for index in range(self.fragments_per_response):
            self._emit(
                {
                    "type": "response.audio.delta",
                    "response_id": response_id,
                    "item_id": item_id,
                    "output_index": 0,
                    "content_index": 0,
                    "delta": self._tone_fragment(index),
                }
            )
        self._emit(
            {
                "type": "response.audio.done",
                "response_id": response_id,
                "item_id": item_id,
                "output_index": 0,
                "content_index": 0,
            }
        )
        self._emit(
            {
                "type": "response.done",
                "response": {"id": response_id, "status": "completed"},
            }
        )
        logger.debug(
            f"[MOCK UPSTREAM] Response {response_id} with "
            f"{self.fragments_per_response} fragments"
        )

    def _tone_fragment(self, index: int) -> str:
        samples_per_fragment = int(DEFAULT_SAMPLE_RATE * self.fragment_duration)
        start = index * samples_per_fragment
        t = np.arange(start, start + samples_per_fragment) / DEFAULT_SAMPLE_RATE
        tone = 0.3 * np.sin(2 * np.pi * self.tone_hz * t)
        return AudioCodec.encode(tone)

    def _error(self, code: str, message: str) -> None:
        self._emit({"type": "error", "error": {"type": code, "message": message}})

    async def recv(self) -> str:
        if self.closed and self._queue.empty():
            raise ConnectionClosed(None, None)
        message = await self._queue.get()
        if message is None:
            raise ConnectionClosed(None, None)
        return message

    def drop(self) -> None:
        """Simulate the service closing the connection."""
        if not self.closed:
            self.closed = True
            self.close_code = 1006
            self._queue.put_nowait(None)
            logger.info(f"[MOCK UPSTREAM] Connection {self.connection_id} dropped")

    async def close(self, code: int = 1000, reason: str = "Normal closure") -> None:
        if self.closed:
            return
        self.closed = True
        self.close_code = code
        self._queue.put_nowait(None)
        logger.info(f"[MOCK UPSTREAM] Connection {self.connection_id} closed: {reason}")

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        message = await self._queue.get()
        if message is None:
            raise StopAsyncIteration
        return message

    def __repr__(self):
        status = "open" if self.open else "closed"
        return f"MockRealtimeWebSocket(id={self.connection_id}, status={status})"


def mock_connect(fragments_per_response: int = 5, **kwargs):
    """Build a connector that opens ``MockRealtimeWebSocket`` connections."""

    async def connect(url: str, headers: Dict[str, str]) -> MockRealtimeWebSocket:
        logger.info(f"[MOCK UPSTREAM] Dialing {url}")
        return MockRealtimeWebSocket(
            fragments_per_response=fragments_per_response, **kwargs
        )

    return connect
