"""
Pull-style façade over the push-style upstream connection.

Clients that can only issue short request/response calls poll the bridge.
Each poll makes sure the upstream connection is up, then returns session
readiness plus every event queued since the previous poll and clears the
queue. Delivery is at most once per poll: events queued between two polls go
to whichever poll comes next, and a poll that never happens loses them.
"""

import logging
import time
from typing import Any, Dict, Optional

from voicerelay.config.constants import LOGGER_NAME
from voicerelay.models.relay_state import AudioDrain, PollSnapshot
from voicerelay.session_connection import SessionConnection

logger = logging.getLogger(LOGGER_NAME)


class PollingBridge:
    """Client-facing contract of the relay."""

    def __init__(self, connection: SessionConnection):
        self.connection = connection
        self.poll_count = 0
        self.forward_count = 0
        self.teardown_count = 0
        self.audio_drain_count = 0
        self.created_at = time.time()

    async def poll(self) -> PollSnapshot:
        """
        Connect if needed, then return and clear the pending events.

        Never waits for new events; a connect in flight is joined.

        Raises:
            ConnectTimeout: The upstream did not open in time
            TransportError: The upstream refused or dropped the connection
        """
        await self.connection.connect()
        snapshot = await self.connection.take_snapshot()
        self.poll_count += 1
        if snapshot.responses:
            logger.debug(f"Poll delivered {len(snapshot.responses)} events")
        return snapshot

    async def forward(self, event: Dict[str, Any]) -> None:
        """
        Send a client event upstream verbatim.

        Raises:
            NotReady: The session is not ready; the event is not sent
        """
        await self.connection.send(event)
        self.forward_count += 1

    async def teardown(self) -> None:
        """Close the upstream session; succeeds whether or not one was active."""
        await self.connection.close()
        self.teardown_count += 1

    async def drain_audio(self, max_fragments: Optional[int] = None) -> AudioDrain:
        """Hand out the next playable reply audio without connecting."""
        drained = await self.connection.drain_audio(max_fragments)
        self.audio_drain_count += 1
        return drained

    def get_stats(self) -> Dict[str, Any]:
        return {
            "uptime_seconds": time.time() - self.created_at,
            "polls": self.poll_count,
            "forwarded": self.forward_count,
            "teardowns": self.teardown_count,
            "audio_drains": self.audio_drain_count,
            "connection": self.connection.get_stats(),
            "errors": self.connection.error_handler.get_error_stats(),
        }
