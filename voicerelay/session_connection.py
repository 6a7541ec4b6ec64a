"""
The single upstream realtime connection.

``SessionConnection`` owns the one long-lived WebSocket to the upstream voice
service on behalf of clients that can only poll. It dials, waits for the
session handshake, forwards client events, and dispatches inbound events:
``session.created`` marks the session ready and triggers the one
``session.update`` the relay sends itself, reply audio goes to the
``ResponseSequencer``, and every other event is queued for the next poll.

All shared state (connection state, session readiness, the pending event
queue and the sequencer) is mutated under one ``asyncio.Lock``. Concurrent
``connect()`` calls join a single in-flight attempt, so there is only ever one
dial. A generation counter ties each receive loop to the connection it was
started for, so cleanup from a loop that has been superseded by ``close()``
or a reconnect is a no-op.
"""

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed

from voicerelay.config.constants import LOGGER_NAME
from voicerelay.config.models import OpenAIConfig, RelayConfig
from voicerelay.exceptions import ConnectTimeout, MalformedEvent, NotReady, TransportError
from voicerelay.handlers.error_handler import ErrorContext, ErrorHandler, ErrorSeverity
from voicerelay.handlers.event_router import EventRouter
from voicerelay.models.openai_api import (
    ClientEvent,
    ResponseAudioDeltaEvent,
    ResponseAudioDoneEvent,
    ServerEventType,
    SessionConfig,
    SessionCreatedEvent,
    SessionUpdateEvent,
    parse_server_event,
)
from voicerelay.models.relay_state import (
    AudioDrain,
    ConnectionState,
    PollSnapshot,
    SessionInfo,
)
from voicerelay.response_sequencer import ResponseSequencer

logger = logging.getLogger(LOGGER_NAME)

# connector(url, headers) -> an open websocket-like object
Connector = Callable[[str, Dict[str, str]], Awaitable[Any]]


def websockets_connector(relay_config: RelayConfig) -> Connector:
    """Build the default connector dialing the upstream with ``websockets``."""

    async def connect(url: str, headers: Dict[str, str]) -> Any:
        return await websockets.connect(
            url,
            additional_headers=headers,
            ping_interval=relay_config.ping_interval,
            ping_timeout=relay_config.ping_timeout,
            close_timeout=relay_config.close_timeout,
            open_timeout=relay_config.connect_timeout,
            max_size=None,
        )

    return connect


class SessionConnection:
    """
    Owns the single upstream connection and its session.

    Args:
        openai_config: Upstream URL, model and credentials
        relay_config: Connect timeout and the instructions sent after session.created
        connector: Coroutine function opening the transport; defaults to ``websockets``
        sequencer: Buffer receiving reply audio
        error_handler: Bookkeeping for errors swallowed by the receive path
    """

    def __init__(
        self,
        openai_config: OpenAIConfig,
        relay_config: RelayConfig,
        connector: Optional[Connector] = None,
        sequencer: Optional[ResponseSequencer] = None,
        error_handler: Optional[ErrorHandler] = None,
    ):
        self.openai_config = openai_config
        self.relay_config = relay_config
        self._connector = connector or websockets_connector(relay_config)
        self.sequencer = sequencer or ResponseSequencer()
        self.error_handler = error_handler or ErrorHandler()

        self.state = ConnectionState.IDLE
        self.session_ready = False
        self.session: Optional[SessionInfo] = None

        self._lock = asyncio.Lock()
        self._ws: Any = None
        self._connect_task: Optional[asyncio.Task] = None
        self._receive_task: Optional[asyncio.Task] = None
        self._generation = 0
        self._pending: List[Dict[str, Any]] = []
        self._connected_at: Optional[float] = None

        self.router = EventRouter(self.error_handler)
        self.router.register_handler(
            ServerEventType.SESSION_CREATED, self._on_session_created
        )
        self.router.register_handler(
            ServerEventType.RESPONSE_AUDIO_DELTA, self._on_audio_delta
        )
        self.router.register_handler(
            ServerEventType.RESPONSE_AUDIO_DONE, self._on_audio_done
        )
        self.router.set_fallback(self._enqueue)

        # Statistics
        self.dial_count = 0
        self.connect_failures = 0
        self.messages_received = 0
        self.messages_sent = 0
        self.malformed_dropped = 0
        self.unexpected_closes = 0

    @property
    def is_open(self) -> bool:
        return self.state == ConnectionState.OPEN

    @property
    def is_ready(self) -> bool:
        return self.is_open and self.session_ready

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """
        Open the upstream connection if it is not already open.

        Callers arriving while an attempt is in flight wait for that attempt
        instead of dialing again.

        Raises:
            ConnectTimeout: The transport did not open within the timeout
            TransportError: The transport was refused, or close() aborted the attempt
        """
        async with self._lock:
            if self.state == ConnectionState.OPEN:
                return
            if self._connect_task is None or self._connect_task.done():
                self._connect_task = asyncio.create_task(self._open())
            task = self._connect_task

        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                raise TransportError("Connection attempt aborted by close()") from None
            raise

    async def _open(self) -> None:
        async with self._lock:
            self._generation += 1
            generation = self._generation
            self.state = ConnectionState.CONNECTING
            self.dial_count += 1

        url = self.openai_config.get_websocket_url()
        headers = self.openai_config.get_headers() if self.openai_config.api_key else {}
        timeout = self.relay_config.connect_timeout
        logger.info(f"Connecting to upstream {url} (timeout {timeout}s)")

        try:
            ws = await asyncio.wait_for(self._connector(url, headers), timeout=timeout)
        except asyncio.TimeoutError as e:
            await self._reset_after_failure(generation)
            logger.error(f"Upstream connection timed out after {timeout}s")
            raise ConnectTimeout(f"Upstream did not open within {timeout}s") from e
        except Exception as e:
            await self._reset_after_failure(generation)
            logger.error(f"Upstream connection failed: {e}")
            raise TransportError(f"Upstream connection failed: {e}") from e

        adopted = False
        try:
            async with self._lock:
                if generation == self._generation:
                    self._ws = ws
                    self.state = ConnectionState.OPEN
                    self._connected_at = time.time()
                    self._receive_task = asyncio.create_task(
                        self._receive_loop(ws, generation)
                    )
                    adopted = True
        finally:
            if not adopted:
                await self._close_transport(ws)

        if not adopted:
            raise TransportError("Connection attempt aborted by close()")
        logger.info("Upstream connection open; waiting for session.created")

    async def _reset_after_failure(self, generation: int) -> None:
        async with self._lock:
            self.connect_failures += 1
            if generation == self._generation:
                self.state = ConnectionState.IDLE
                self._clear_session_state()

    async def close(self) -> None:
        """
        Close the connection and clear all session state.

        Safe from any state, including mid-connect; closing an idle
        connection is a no-op. The transport is released and every buffer
        cleared before this returns.
        """
        async with self._lock:
            connecting = self._connect_task is not None and not self._connect_task.done()
            if self.state == ConnectionState.IDLE and not connecting:
                return
            self._generation += 1
            connect_task, self._connect_task = self._connect_task, None
            receive_task, self._receive_task = self._receive_task, None
            ws, self._ws = self._ws, None
            self.state = ConnectionState.CLOSED
            self._clear_session_state()

        logger.info("Closing upstream connection")

        pending_tasks = []
        for task in (connect_task, receive_task):
            if task is not None and not task.done() and task is not asyncio.current_task():
                task.cancel()
                pending_tasks.append(task)
        if pending_tasks:
            await asyncio.gather(*pending_tasks, return_exceptions=True)

        await self._close_transport(ws)

        async with self._lock:
            if self.state == ConnectionState.CLOSED:
                self.state = ConnectionState.IDLE
                self._connected_at = None
        logger.info("Upstream connection closed")

    async def _close_transport(self, ws: Any) -> None:
        if ws is None:
            return
        try:
            await ws.close()
        except Exception as e:
            logger.warning(f"Error closing upstream transport: {e}")

    def _clear_session_state(self) -> None:
        self.session_ready = False
        self.session = None
        self._pending.clear()
        self.sequencer.clear()

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def send(self, event: Union[Dict[str, Any], ClientEvent]) -> None:
        """
        Forward one event upstream verbatim.

        Raises:
            NotReady: The connection is not open or session.created has not arrived
            TransportError: The transport failed while sending
        """
        async with self._lock:
            await self._send_locked(event)

    async def _send_locked(
        self, event: Union[Dict[str, Any], ClientEvent], handshake: bool = False
    ) -> None:
        if self.state != ConnectionState.OPEN or self._ws is None:
            raise NotReady("Upstream connection is not open")
        if not handshake and not self.session_ready:
            raise NotReady("Upstream session has not been created yet")

        payload = event.to_wire() if isinstance(event, ClientEvent) else event
        if not isinstance(payload, dict):
            raise TypeError(f"Event must be a JSON object, got {type(payload).__name__}")

        try:
            await self._ws.send(json.dumps(payload))
        except ConnectionClosed as e:
            raise TransportError(f"Upstream closed while sending: {e}") from e
        self.messages_sent += 1
        logger.debug(f"Sent upstream event: {payload.get('type')}")

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def _receive_loop(self, ws: Any, generation: int) -> None:
        lost = True
        try:
            async for message in ws:
                await self._handle_message(message, generation)
        except asyncio.CancelledError:
            lost = False
            raise
        except ConnectionClosed as e:
            logger.info(f"Upstream connection closed: {e}")
        except Exception as e:
            await self.error_handler.handle_error(
                e,
                context=ErrorContext.UPSTREAM,
                severity=ErrorSeverity.HIGH,
                operation="receive_loop",
            )
        finally:
            if lost:
                await self._on_transport_lost(generation)

    async def _handle_message(self, message: Union[str, bytes], generation: int) -> None:
        self.messages_received += 1
        try:
            event = parse_server_event(message)
        except MalformedEvent as e:
            self.malformed_dropped += 1
            await self.error_handler.handle_error(
                e,
                context=ErrorContext.UPSTREAM,
                severity=ErrorSeverity.MEDIUM,
                operation="parse_server_event",
                size=len(message),
            )
            return

        async with self._lock:
            if generation != self._generation:
                return
            await self.router.dispatch(event)

    async def _on_transport_lost(self, generation: int) -> None:
        async with self._lock:
            if generation != self._generation:
                return
            self._generation += 1
            ws, self._ws = self._ws, None
            self._receive_task = None
            self._connect_task = None
            self.state = ConnectionState.CLOSED
            self._clear_session_state()
            self.unexpected_closes += 1

        logger.warning("Upstream closed the connection unexpectedly; session state cleared")
        await self._close_transport(ws)

        async with self._lock:
            if self.state == ConnectionState.CLOSED:
                self.state = ConnectionState.IDLE
                self._connected_at = None

    # Event handlers run under the lock, from the receive loop

    async def _on_session_created(self, event: SessionCreatedEvent) -> None:
        self.session_ready = True
        self.session = SessionInfo.from_payload(event.session)
        logger.info(f"Upstream session created: {self.session.id}")

        update = SessionUpdateEvent(
            session=SessionConfig(instructions=self.relay_config.instructions)
        )
        try:
            await self._send_locked(update, handshake=True)
        except (NotReady, TransportError) as e:
            await self.error_handler.handle_error(
                e,
                context=ErrorContext.SESSION,
                severity=ErrorSeverity.MEDIUM,
                operation="session.update",
            )

    def _on_audio_delta(self, event: ResponseAudioDeltaEvent) -> None:
        self.sequencer.append(event.response_id, event.delta)

    def _on_audio_done(self, event: ResponseAudioDoneEvent) -> None:
        self.sequencer.complete(event.response_id)

    def _enqueue(self, event: Any) -> None:
        self._pending.append(event.to_wire())

    # ------------------------------------------------------------------
    # Client-facing reads
    # ------------------------------------------------------------------

    async def take_snapshot(self) -> PollSnapshot:
        """Return readiness plus every pending event, clearing the queue."""
        async with self._lock:
            events, self._pending = self._pending, []
            return PollSnapshot(is_session_created=self.session_ready, responses=events)

    async def drain_audio(self, max_fragments: Optional[int] = None) -> AudioDrain:
        """Hand out the next playable reply audio fragments."""
        async with self._lock:
            return self.sequencer.drain(max_fragments)

    def get_stats(self) -> Dict[str, Any]:
        """Get connection statistics."""
        return {
            "state": self.state.value,
            "session_ready": self.session_ready,
            "session_id": self.session.id if self.session else None,
            "uptime_seconds": (
                time.time() - self._connected_at if self._connected_at else 0.0
            ),
            "dial_count": self.dial_count,
            "connect_failures": self.connect_failures,
            "messages_received": self.messages_received,
            "messages_sent": self.messages_sent,
            "malformed_dropped": self.malformed_dropped,
            "unexpected_closes": self.unexpected_closes,
            "pending_events": len(self._pending),
            "sequencer": self.sequencer.get_stats(),
            "router": self.router.get_handler_stats(),
        }
