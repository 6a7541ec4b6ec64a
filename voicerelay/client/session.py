"""
One simulated call from the trainee's side.

``CallSession`` ties the client pieces together: a poll loop at a fixed
cadence (backing off after failed polls), upload of captured audio, silence
endpointing that ends the trainee's turn and asks for a reply, and playback of
the reply audio as it arrives.
"""

import asyncio
import logging
from collections import deque
from typing import Any, Callable, Deque, Dict, Optional

import numpy as np

from voicerelay.config.constants import DEFAULT_POLL_INTERVAL, DEFAULT_SAMPLE_RATE, LOGGER_NAME
from voicerelay.exceptions import RelayError
from voicerelay.models.openai_api import (
    InputAudioBufferAppendEvent,
    InputAudioBufferCommitEvent,
    ResponseCreateEvent,
    ServerEventType,
)
from voicerelay.models.relay_state import PollSnapshot
from voicerelay.client.playback import PlaybackScheduler
from voicerelay.client.polling_client import RelayClient
from voicerelay.utils.audio_codec import AudioCodec
from voicerelay.utils.retry_utils import RetryUtils
from voicerelay.vad.audio_processor import frame_level
from voicerelay.vad.endpointer import UtteranceEndpointer

logger = logging.getLogger(LOGGER_NAME)

# Upper bound on audio drains per poll cycle
MAX_DRAINS_PER_POLL = 8


class CallSession:
    """
    Drives a call against the relay.

    Args:
        client: HTTP client for the relay
        playback: Scheduler playing reply audio
        endpointer: Silence detector ending each trainee turn
        poll_interval: Seconds between polls when healthy
        sample_rate: Rate of the audio passed to ``send_audio``
        on_event: Optional callback for every polled event
    """

    def __init__(
        self,
        client: RelayClient,
        playback: PlaybackScheduler,
        endpointer: UtteranceEndpointer,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        on_event: Optional[Callable[[Dict[str, Any]], Any]] = None,
    ):
        self.client = client
        self.playback = playback
        self.endpointer = endpointer
        self.poll_interval = poll_interval
        self.sample_rate = sample_rate
        self.on_event = on_event

        self.session_ready = False
        self.events: Deque[Dict[str, Any]] = deque(maxlen=500)
        self.turns = 0
        self.consecutive_failures = 0

        self._ready = asyncio.Event()
        self._response_done = asyncio.Event()
        self._poll_task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        """Start playback and the poll loop."""
        self.playback.start()
        if self._poll_task is None:
            self._poll_task = asyncio.create_task(self._poll_loop())

    async def stop(self, hangup: bool = True) -> None:
        """Stop polling and playback; optionally close the upstream session."""
        if self._poll_task is not None:
            self._poll_task.cancel()
            await asyncio.gather(self._poll_task, return_exceptions=True)
            self._poll_task = None
        await self.playback.stop()
        if hangup:
            try:
                await self.client.close_session()
            except RelayError as e:
                logger.warning(f"Could not close relay session: {e}")

    async def _poll_loop(self) -> None:
        while True:
            try:
                await self.poll_once()
            except RelayError as e:
                delay = RetryUtils.calculate_backoff_delay(
                    self.consecutive_failures, base_delay=self.poll_interval
                )
                self.consecutive_failures += 1
                logger.warning(f"Poll failed ({e}); retrying in {delay:.1f}s")
                await asyncio.sleep(delay)
                continue
            await asyncio.sleep(self.poll_interval)

    async def poll_once(self) -> PollSnapshot:
        """Run one poll cycle: events, then any reply audio."""
        snapshot = await self.client.poll()
        self.consecutive_failures = 0
        reply_finished = self._apply_snapshot(snapshot)

        for _ in range(MAX_DRAINS_PER_POLL):
            drained = await self.client.drain_audio()
            if drained.response_id is None:
                break
            self.playback.feed(drained)
            if not drained.done:
                break

        # Set only after the reply audio of this cycle has been queued
        if reply_finished:
            self._response_done.set()
        return snapshot

    def _apply_snapshot(self, snapshot: PollSnapshot) -> bool:
        if snapshot.is_session_created and not self.session_ready:
            logger.info("Relay session is ready")
        self.session_ready = snapshot.is_session_created
        if self.session_ready:
            self._ready.set()
        else:
            self._ready.clear()

        reply_finished = False
        for event in snapshot.responses:
            self.events.append(event)
            event_type = event.get("type")
            if event_type == ServerEventType.ERROR.value:
                logger.error(f"Upstream error: {event.get('error')}")
            elif event_type == ServerEventType.RESPONSE_DONE.value:
                reply_finished = True
            if self.on_event is not None:
                self.on_event(event)
        return reply_finished

    async def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Wait for the relay to report the session as created."""
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def send_audio(self, samples, now: Optional[float] = None) -> bool:
        """
        Upload one captured frame and feed its level to the endpointer.

        Args:
            samples: Float samples in [-1, 1] at ``sample_rate``
            now: Frame timestamp for the endpointer; its clock when omitted

        Returns:
            bool: True when this frame ended the utterance
        """
        payload = AudioCodec.encode(samples, self.sample_rate)
        await self.client.send(InputAudioBufferAppendEvent(audio=payload))

        if self.endpointer.update(frame_level(samples), now):
            await self.end_utterance()
            return True
        return False

    async def end_utterance(self) -> None:
        """Commit the uploaded audio as a turn and ask for a reply."""
        self._response_done.clear()
        await self.client.send(InputAudioBufferCommitEvent())
        await self.client.send(ResponseCreateEvent())
        self.turns += 1
        self.endpointer.rearm()
        logger.info(f"Turn {self.turns} committed; reply requested")

    async def stream_utterance(
        self,
        samples: np.ndarray,
        frame_ms: int = 100,
        max_trailing_silence: float = 5.0,
        pace: bool = True,
    ) -> None:
        """
        Upload a recorded utterance frame by frame, as a microphone would.

        Frames are timestamped on the audio's own timeline. If the recording
        does not end in enough silence, silent frames are appended until the
        endpointer ends the turn; the turn is ended explicitly if that never
        happens within ``max_trailing_silence`` seconds.
        """
        frame_len = max(1, int(self.sample_rate * frame_ms / 1000))
        frame_seconds = frame_len / float(self.sample_rate)
        frames = 0

        for start in range(0, len(samples), frame_len):
            frame = samples[start : start + frame_len]
            if await self.send_audio(frame, now=frames * frame_seconds):
                return
            frames += 1
            if pace:
                await asyncio.sleep(frame_seconds)

        silence = np.zeros(frame_len, dtype=np.float32)
        for _ in range(max(1, int(round(max_trailing_silence / frame_seconds)))):
            if await self.send_audio(silence, now=frames * frame_seconds):
                return
            frames += 1
            if pace:
                await asyncio.sleep(frame_seconds)

        await self.end_utterance()

    async def wait_for_reply(self, timeout: Optional[float] = None) -> bool:
        """Wait until the reply is complete and has finished playing."""

        async def _wait():
            await self._response_done.wait()
            await self.playback.wait_idle()

        try:
            await asyncio.wait_for(_wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True
