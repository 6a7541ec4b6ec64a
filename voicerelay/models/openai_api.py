"""
Pydantic models for the upstream realtime voice protocol.

Only the slice of the protocol the relay interprets is modelled: the inbound
events that drive session state and audio sequencing, and the outbound events
the relay or the trainee client construct themselves. Every other inbound
event is carried as an ``UnrecognizedEvent`` holding the verbatim payload, so
it can be queued for the polling client without loss.
"""

import json
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from voicerelay.exceptions import MalformedEvent


class ClientEventType(str, Enum):
    """Types of events that can be sent to the upstream service."""

    SESSION_UPDATE = "session.update"
    INPUT_AUDIO_BUFFER_APPEND = "input_audio_buffer.append"
    INPUT_AUDIO_BUFFER_COMMIT = "input_audio_buffer.commit"
    INPUT_AUDIO_BUFFER_CLEAR = "input_audio_buffer.clear"
    RESPONSE_CREATE = "response.create"
    RESPONSE_CANCEL = "response.cancel"


class ServerEventType(str, Enum):
    """Types of events received from the upstream service."""

    ERROR = "error"
    SESSION_CREATED = "session.created"
    SESSION_UPDATED = "session.updated"
    INPUT_AUDIO_BUFFER_COMMITTED = "input_audio_buffer.committed"
    INPUT_AUDIO_BUFFER_SPEECH_STARTED = "input_audio_buffer.speech_started"
    INPUT_AUDIO_BUFFER_SPEECH_STOPPED = "input_audio_buffer.speech_stopped"
    RESPONSE_CREATED = "response.created"
    RESPONSE_DONE = "response.done"
    RESPONSE_AUDIO_DELTA = "response.audio.delta"
    RESPONSE_AUDIO_DONE = "response.audio.done"
    RESPONSE_AUDIO_TRANSCRIPT_DELTA = "response.audio_transcript.delta"
    RESPONSE_AUDIO_TRANSCRIPT_DONE = "response.audio_transcript.done"


class SessionConfig(BaseModel):
    """Session fields the relay sets through ``session.update``."""

    modalities: Optional[List[str]] = None
    instructions: Optional[str] = None
    voice: Optional[str] = None
    input_audio_format: Optional[str] = None  # "pcm16"
    output_audio_format: Optional[str] = None  # "pcm16"
    turn_detection: Optional[Dict[str, Any]] = None


class ClientEvent(BaseModel):
    """Base model for events sent upstream."""

    type: str
    event_id: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class SessionUpdateEvent(ClientEvent):
    """Event to update session configuration.

    The relay sends exactly one of these right after ``session.created``;
    the server answers with ``session.updated``.
    """

    type: Literal["session.update"] = "session.update"
    session: SessionConfig


class InputAudioBufferAppendEvent(ClientEvent):
    """Event to append base64 PCM16 audio to the input buffer."""

    type: Literal["input_audio_buffer.append"] = "input_audio_buffer.append"
    audio: str


class InputAudioBufferCommitEvent(ClientEvent):
    """Event to commit the input buffer as a user turn."""

    type: Literal["input_audio_buffer.commit"] = "input_audio_buffer.commit"


class ResponseCreateEvent(ClientEvent):
    """Event asking the server to produce a reply."""

    type: Literal["response.create"] = "response.create"
    response: Optional[Dict[str, Any]] = None


class ServerEvent(BaseModel):
    """Base model for events received from upstream."""

    model_config = ConfigDict(extra="allow")

    type: str
    event_id: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class SessionCreatedEvent(ServerEvent):
    """First server event on a new connection, carrying the default session."""

    type: Literal["session.created"] = "session.created"
    session: Dict[str, Any] = Field(default_factory=dict)


class ResponseAudioDeltaEvent(ServerEvent):
    """One base64 PCM16 fragment of a spoken reply."""

    type: Literal["response.audio.delta"] = "response.audio.delta"
    response_id: str
    delta: str
    item_id: Optional[str] = None
    output_index: Optional[int] = None
    content_index: Optional[int] = None


class ResponseAudioDoneEvent(ServerEvent):
    """Marks the end of the audio for one response."""

    type: Literal["response.audio.done"] = "response.audio.done"
    response_id: str
    item_id: Optional[str] = None
    output_index: Optional[int] = None
    content_index: Optional[int] = None


class UnrecognizedEvent(BaseModel):
    """Any server event the relay does not interpret, kept verbatim."""

    type: str
    payload: Dict[str, Any]

    def to_wire(self) -> Dict[str, Any]:
        return self.payload


ServerEventUnion = Union[
    SessionCreatedEvent,
    ResponseAudioDeltaEvent,
    ResponseAudioDoneEvent,
    UnrecognizedEvent,
]

_SERVER_EVENT_MODELS: Dict[str, Type[ServerEvent]] = {
    ServerEventType.SESSION_CREATED.value: SessionCreatedEvent,
    ServerEventType.RESPONSE_AUDIO_DELTA.value: ResponseAudioDeltaEvent,
    ServerEventType.RESPONSE_AUDIO_DONE.value: ResponseAudioDoneEvent,
}


def parse_server_event(raw: Union[str, bytes, bytearray, Dict[str, Any]]) -> ServerEventUnion:
    """Parse one inbound message into its typed event.

    Args:
        raw: A JSON text/bytes frame, or an already decoded object

    Returns:
        The typed event, or an ``UnrecognizedEvent`` for any other type

    Raises:
        MalformedEvent: invalid JSON, a non-object payload, a missing or
            non-string ``type``, or a recognised type that fails validation
    """
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise MalformedEvent(f"Invalid JSON from upstream: {e}") from e
    else:
        data = raw

    if not isinstance(data, dict):
        raise MalformedEvent(f"Expected a JSON object, got {type(data).__name__}")

    event_type = data.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise MalformedEvent("Event has no string 'type' field")

    model = _SERVER_EVENT_MODELS.get(event_type)
    if model is None:
        return UnrecognizedEvent(type=event_type, payload=data)

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MalformedEvent(f"Invalid {event_type} event: {e}") from e
