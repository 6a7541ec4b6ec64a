"""
HTTP client for the relay's polling surface.

Mirrors what the browser page does: periodic ``GET`` polls, ``POST`` to send
an event, ``DELETE`` to hang up, plus ``GET /audio`` to fetch reply audio.
Non-200 responses are raised as the matching ``RelayError``.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Union

import aiohttp

from voicerelay.config.constants import DEFAULT_RELAY_URL, DEFAULT_REQUEST_TIMEOUT, LOGGER_NAME
from voicerelay.exceptions import ConnectTimeout, NotReady, RelayError, TransportError
from voicerelay.models.openai_api import ClientEvent
from voicerelay.models.relay_state import AudioDrain, PollSnapshot

logger = logging.getLogger(LOGGER_NAME)

STATUS_ERRORS = {
    503: NotReady,
    504: ConnectTimeout,
}


class RelayClient:
    """
    Async client for one relay endpoint.

    Usage:
        async with RelayClient("http://localhost:8000/api/ws") as client:
            snapshot = await client.poll()
            if snapshot.is_session_created:
                await client.send({"type": "response.create"})
    """

    def __init__(
        self,
        relay_url: str = DEFAULT_RELAY_URL,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.relay_url = relay_url.rstrip("/")
        self.request_timeout = request_timeout
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "RelayClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def start(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout)
            )

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def poll(self) -> PollSnapshot:
        """Fetch readiness and the events queued since the last poll."""
        data = await self._request("GET", self.relay_url)
        return PollSnapshot.model_validate(data)

    async def send(self, event: Union[Dict[str, Any], ClientEvent]) -> None:
        """Forward one event upstream through the relay."""
        payload = event.to_wire() if isinstance(event, ClientEvent) else event
        await self._request("POST", self.relay_url, json=payload)

    async def drain_audio(self, max_fragments: Optional[int] = None) -> AudioDrain:
        """Fetch the next reply audio fragments."""
        params = {"max_fragments": str(max_fragments)} if max_fragments else None
        data = await self._request("GET", f"{self.relay_url}/audio", params=params)
        return AudioDrain.model_validate(data)

    async def close_session(self) -> None:
        """Ask the relay to close the upstream session."""
        await self._request("DELETE", self.relay_url)

    async def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        if self._session is None:
            await self.start()

        try:
            async with self._session.request(method, url, **kwargs) as response:
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    data = None
                if not isinstance(data, dict):
                    data = {}

                if response.status == 200:
                    return data

                message = data.get("error") or f"Relay returned HTTP {response.status}"
                error_cls = STATUS_ERRORS.get(response.status, TransportError)
                raise error_cls(message)
        except RelayError:
            raise
        except asyncio.TimeoutError as e:
            raise ConnectTimeout(f"{method} {url} timed out") from e
        except aiohttp.ClientError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e
