"""
Trainee-side client for the relay.

- polling_client: aiohttp client for the relay's poll/send/hang-up surface
- playback: ordered, gapless playback of reply audio through an AudioSink
- session: a full call, with audio upload, endpointing and the poll loop

Run a call from a recording with ``python -m voicerelay.client --wav FILE``.
"""

from .playback import AudioSink, NullSink, PlaybackScheduler, SoundDeviceSink
from .polling_client import RelayClient
from .session import CallSession
