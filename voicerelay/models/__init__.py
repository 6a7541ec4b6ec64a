"""
Data models for the voice relay.

Key components:
- openai_api: Pydantic models for the upstream realtime voice protocol, with
  ``parse_server_event`` turning raw frames into a tagged union of the event
  kinds the relay interprets plus a verbatim ``UnrecognizedEvent``.
- relay_state: Connection lifecycle, session info and the snapshots served to
  polling clients.
"""

from .openai_api import (
    ClientEventType,
    InputAudioBufferAppendEvent,
    InputAudioBufferCommitEvent,
    ResponseAudioDeltaEvent,
    ResponseAudioDoneEvent,
    ResponseCreateEvent,
    ServerEventType,
    SessionConfig,
    SessionCreatedEvent,
    SessionUpdateEvent,
    UnrecognizedEvent,
    parse_server_event,
)
from .relay_state import AudioDrain, ConnectionState, PollSnapshot, SessionInfo
