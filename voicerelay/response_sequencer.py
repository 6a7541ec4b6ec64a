"""
Ordered, supersedable buffering of streamed reply audio.

Upstream audio for one spoken reply arrives as many small base64 fragments
tagged with a response id. The sequencer keeps them in arrival order and hands
them out strictly FIFO. At most one response is live (still streaming): a
fragment for a different id while the live response is unfinished discards the
live response, so a later reply never interleaves with an earlier one.
Completed responses stay queued until they have been fully drained, up to
MAX_COMPLETED_RESPONSES; beyond that the oldest undrained one is dropped.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from voicerelay.config.constants import LOGGER_NAME
from voicerelay.models.relay_state import AudioDrain

logger = logging.getLogger(LOGGER_NAME)

# Number of finished response ids remembered so their late fragments are dropped
RETIRED_HISTORY = 64

# Finished responses kept for draining; the oldest is dropped beyond this
MAX_COMPLETED_RESPONSES = 16


class BufferStatus(Enum):
    STREAMING = "streaming"
    DONE = "done"


@dataclass
class ResponseBuffer:
    """Undelivered fragments of one response."""

    response_id: str
    fragments: Deque[str] = field(default_factory=deque)
    status: BufferStatus = BufferStatus.STREAMING
    received: int = 0
    delivered: int = 0

    @property
    def is_done(self) -> bool:
        return self.status == BufferStatus.DONE

    @property
    def exhausted(self) -> bool:
        return self.is_done and not self.fragments


class ResponseSequencer:
    """
    Buffers reply audio per response id and exposes it for ordered playback.

    Not thread-safe; the owner serialises calls.
    """

    def __init__(self):
        self._live: Optional[ResponseBuffer] = None
        self._completed: Deque[ResponseBuffer] = deque()
        self._retired: Deque[str] = deque(maxlen=RETIRED_HISTORY)
        self._available = asyncio.Event()

        self.fragments_received = 0
        self.fragments_drained = 0
        self.superseded_count = 0
        self.stale_completions = 0
        self.late_fragments = 0
        self.dropped_completed = 0

    @property
    def live_response_id(self) -> Optional[str]:
        return self._live.response_id if self._live else None

    @property
    def has_pending(self) -> bool:
        """True when a drain would return fragments or a completion."""
        if self._completed:
            return True
        return bool(self._live and self._live.fragments)

    def append(self, response_id: str, fragment: str) -> None:
        """
        Append a fragment to the tail of its response.

        A fragment for a new id supersedes the unfinished live response. A
        fragment for an id that was already superseded or completed is stale
        and dropped.
        """
        if self._live is not None and self._live.response_id == response_id:
            self._push(self._live, fragment)
            return

        if response_id in self._retired:
            self.late_fragments += 1
            logger.debug(f"Dropping late fragment for finished response {response_id}")
            return

        if self._live is not None:
            discarded = len(self._live.fragments)
            logger.info(
                f"Response {response_id} supersedes unfinished {self._live.response_id} "
                f"({discarded} undrained fragments discarded)"
            )
            self._retired.append(self._live.response_id)
            self.superseded_count += 1

        self._live = ResponseBuffer(response_id=response_id)
        self._push(self._live, fragment)

    def complete(self, response_id: str) -> bool:
        """
        Mark the live response as done.

        Returns:
            bool: False when the completion is stale (not for the live response)
        """
        if self._live is None or self._live.response_id != response_id:
            self.stale_completions += 1
            logger.debug(f"Ignoring stale completion for response {response_id}")
            return False

        buffer = self._live
        buffer.status = BufferStatus.DONE
        self._live = None
        self._retired.append(response_id)
        self._completed.append(buffer)
        if len(self._completed) > MAX_COMPLETED_RESPONSES:
            dropped = self._completed.popleft()
            self.dropped_completed += 1
            logger.info(
                f"Dropping undrained response {dropped.response_id} "
                f"({len(dropped.fragments)} fragments); backlog limit reached"
            )
        self._available.set()
        logger.debug(
            f"Response {response_id} complete ({buffer.received} fragments received)"
        )
        return True

    def drain(self, max_fragments: Optional[int] = None) -> AudioDrain:
        """
        Hand out the next undelivered fragments in arrival order.

        Fragments come from the oldest completed response first, then from
        the live one; a single call never mixes responses. A completed response
        is removed once its last fragment has been handed out, and that call
        reports ``done=True``.

        Args:
            max_fragments: Upper bound on fragments returned; all when None
        """
        if max_fragments is not None and max_fragments < 1:
            raise ValueError("max_fragments must be positive")

        buffer = self._completed[0] if self._completed else self._live
        if buffer is None:
            self._refresh_available()
            return AudioDrain()

        fragments: List[str] = []
        while buffer.fragments and (max_fragments is None or len(fragments) < max_fragments):
            fragments.append(buffer.fragments.popleft())
        buffer.delivered += len(fragments)
        self.fragments_drained += len(fragments)

        done = buffer.exhausted
        if done:
            self._completed.popleft()
            logger.debug(
                f"Response {buffer.response_id} fully drained ({buffer.delivered} fragments)"
            )

        self._refresh_available()
        return AudioDrain(response_id=buffer.response_id, fragments=fragments, done=done)

    def next_fragment(self) -> Optional[str]:
        """Hand out exactly one fragment, or None if nothing is buffered."""
        result = self.drain(max_fragments=1)
        return result.fragments[0] if result.fragments else None

    async def wait_available(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until something is drainable.

        Returns:
            bool: False if the timeout expired first
        """
        if self.has_pending:
            return True
        try:
            await asyncio.wait_for(self._available.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return self.has_pending

    def clear(self) -> None:
        """Discard every buffer."""
        self._live = None
        self._completed.clear()
        self._retired.clear()
        self._available.clear()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "live_response_id": self.live_response_id,
            "live_fragments": len(self._live.fragments) if self._live else 0,
            "completed_pending": len(self._completed),
            "fragments_received": self.fragments_received,
            "fragments_drained": self.fragments_drained,
            "superseded": self.superseded_count,
            "stale_completions": self.stale_completions,
            "late_fragments": self.late_fragments,
            "dropped_completed": self.dropped_completed,
        }

    def _push(self, buffer: ResponseBuffer, fragment: str) -> None:
        buffer.fragments.append(fragment)
        buffer.received += 1
        self.fragments_received += 1
        self._available.set()

    def _refresh_available(self) -> None:
        if not self.has_pending:
            self._available.clear()
