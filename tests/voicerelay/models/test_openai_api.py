"""Tests for upstream event models and parsing."""

import json

import pytest

from voicerelay.exceptions import MalformedEvent
from voicerelay.models.openai_api import (
    InputAudioBufferAppendEvent,
    InputAudioBufferCommitEvent,
    ResponseAudioDeltaEvent,
    ResponseAudioDoneEvent,
    ResponseCreateEvent,
    SessionConfig,
    SessionCreatedEvent,
    SessionUpdateEvent,
    UnrecognizedEvent,
    parse_server_event,
)


class TestParseServerEvent:
    def test_session_created(self):
        event = parse_server_event(
            json.dumps({"type": "session.created", "session": {"id": "sess_1"}})
        )
        assert isinstance(event, SessionCreatedEvent)
        assert event.session["id"] == "sess_1"

    def test_audio_delta(self):
        event = parse_server_event(
            {"type": "response.audio.delta", "response_id": "r1", "delta": "AAA=", "item_id": "i1"}
        )
        assert isinstance(event, ResponseAudioDeltaEvent)
        assert event.response_id == "r1"
        assert event.delta == "AAA="

    def test_audio_done(self):
        event = parse_server_event(b'{"type": "response.audio.done", "response_id": "r1"}')
        assert isinstance(event, ResponseAudioDoneEvent)

    def test_unrecognized_event_keeps_payload(self):
        payload = {"type": "response.done", "response": {"id": "r1"}, "extra": [1, 2]}

        event = parse_server_event(json.dumps(payload))

        assert isinstance(event, UnrecognizedEvent)
        assert event.type == "response.done"
        assert event.to_wire() == payload

    def test_unknown_fields_are_kept_on_known_events(self):
        event = parse_server_event(
            {"type": "session.created", "session": {}, "new_field": "x"}
        )
        assert event.to_wire()["new_field"] == "x"

    @pytest.mark.parametrize(
        "raw",
        [
            "{not json",
            "[1, 2]",
            '"text"',
            "{}",
            '{"type": 5}',
            '{"type": ""}',
            '{"type": "response.audio.delta", "response_id": "r1"}',
            '{"type": "response.audio.done"}',
        ],
    )
    def test_malformed_input(self, raw):
        with pytest.raises(MalformedEvent):
            parse_server_event(raw)


class TestClientEvents:
    def test_session_update_wire_format(self):
        event = SessionUpdateEvent(session=SessionConfig(instructions="Hello"))
        assert event.to_wire() == {"type": "session.update", "session": {"instructions": "Hello"}}

    def test_audio_append(self):
        assert InputAudioBufferAppendEvent(audio="AAA=").to_wire() == {
            "type": "input_audio_buffer.append",
            "audio": "AAA=",
        }

    def test_commit_and_response_create(self):
        assert InputAudioBufferCommitEvent().to_wire() == {"type": "input_audio_buffer.commit"}
        assert ResponseCreateEvent().to_wire() == {"type": "response.create"}
