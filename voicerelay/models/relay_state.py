"""
State and snapshot models exposed by the relay.

``PollSnapshot`` and ``AudioDrain`` are what the HTTP layer serialises for the
polling client; their camelCase aliases are the wire names the browser client
already reads.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ConnectionState(str, Enum):
    """Lifecycle of the single upstream connection."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class SessionInfo(BaseModel):
    """The upstream session as announced by ``session.created``."""

    id: Optional[str] = None
    voice: Optional[str] = None
    instructions: Optional[str] = None
    modalities: List[str] = Field(default_factory=list)

    @classmethod
    def from_payload(cls, session: Dict[str, Any]) -> "SessionInfo":
        return cls(
            id=session.get("id"),
            voice=session.get("voice"),
            instructions=session.get("instructions"),
            modalities=list(session.get("modalities") or []),
        )


class PollSnapshot(BaseModel):
    """Result of one poll: readiness plus the drained pending events."""

    model_config = ConfigDict(populate_by_name=True)

    is_session_created: bool = Field(alias="isSessionCreated")
    responses: List[Dict[str, Any]] = Field(default_factory=list)


class AudioDrain(BaseModel):
    """Fragments handed out for playback by one drain call."""

    model_config = ConfigDict(populate_by_name=True)

    response_id: Optional[str] = Field(default=None, alias="responseId")
    fragments: List[str] = Field(default_factory=list)
    done: bool = False
