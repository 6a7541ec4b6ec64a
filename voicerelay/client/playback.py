"""
Client-side playback of reply audio.

Fragments fetched from the relay are fed into a local ``ResponseSequencer``;
a background task takes them one at a time, decodes them and plays them
through an ``AudioSink``. Each fragment is handed to the sink only after the
previous one has finished playing, which keeps a reply gapless and in order.
A fragment for a new response discards whatever is left of an unfinished one.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from voicerelay.config.constants import LOGGER_NAME
from voicerelay.exceptions import MalformedAudio
from voicerelay.models.relay_state import AudioDrain
from voicerelay.response_sequencer import ResponseSequencer
from voicerelay.utils.audio_codec import AudioCodec, PlaybackBuffer

logger = logging.getLogger(LOGGER_NAME)


class AudioSink(ABC):
    """Destination for decoded reply audio."""

    @abstractmethod
    async def play(self, buffer: PlaybackBuffer) -> None:
        """Play one buffer, returning once it has finished playing."""
        pass

    def close(self) -> None:
        """Release the output device."""
        pass


class NullSink(AudioSink):
    """Sink that records buffers instead of playing them, for headless use."""

    def __init__(self, realtime: bool = False):
        self.realtime = realtime
        self.played: List[PlaybackBuffer] = []

    async def play(self, buffer: PlaybackBuffer) -> None:
        self.played.append(buffer)
        if self.realtime:
            await asyncio.sleep(buffer.duration)

    @property
    def total_duration(self) -> float:
        return sum(b.duration for b in self.played)


class SoundDeviceSink(AudioSink):
    """Plays through the default output device using sounddevice."""

    def __init__(self, device: Optional[int] = None):
        try:
            import sounddevice
        except ImportError as e:
            raise RuntimeError(
                "sounddevice package not installed. Please install with: "
                "pip install 'voicerelay[audio]'"
            ) from e
        self._sd = sounddevice
        self.device = device

    async def play(self, buffer: PlaybackBuffer) -> None:
        await asyncio.to_thread(self._play_blocking, buffer)

    def _play_blocking(self, buffer: PlaybackBuffer) -> None:
        self._sd.play(
            buffer.samples, samplerate=buffer.sample_rate, device=self.device, blocking=True
        )

    def close(self) -> None:
        self._sd.stop()


class PlaybackScheduler:
    """Plays reply fragments one at a time in arrival order."""

    def __init__(self, sink: AudioSink, sequencer: Optional[ResponseSequencer] = None):
        self.sink = sink
        self.sequencer = sequencer or ResponseSequencer()
        self._task: Optional[asyncio.Task] = None
        self._playing = False
        self.played_fragments = 0
        self.malformed_fragments = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def idle(self) -> bool:
        return not self._playing and not self.sequencer.has_pending

    def feed(self, drained: AudioDrain) -> None:
        """Queue fragments fetched from the relay."""
        if drained.response_id is None:
            return
        for fragment in drained.fragments:
            self.sequencer.append(drained.response_id, fragment)
        if drained.done:
            self.sequencer.complete(drained.response_id)

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        self.sequencer.clear()
        self.sink.close()

    async def wait_idle(self, timeout: Optional[float] = None, interval: float = 0.02) -> bool:
        """
        Wait until every queued fragment has been played.

        Returns:
            bool: False if the timeout expired first
        """

        async def _wait():
            while not self.idle:
                await asyncio.sleep(interval)

        try:
            await asyncio.wait_for(_wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def _run(self) -> None:
        while True:
            await self.sequencer.wait_available()
            fragment = self.sequencer.next_fragment()
            if fragment is None:
                continue

            try:
                buffer = AudioCodec.decode(fragment)
            except MalformedAudio as e:
                self.malformed_fragments += 1
                logger.warning(f"Skipping undecodable reply fragment: {e}")
                continue

            self._playing = True
            try:
                await self.sink.play(buffer)
            finally:
                self._playing = False
            self.played_fragments += 1
