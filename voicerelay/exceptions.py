"""
Exception hierarchy for the voice relay.

Every failure the relay surfaces to a caller derives from ``RelayError`` so
the HTTP layer and the trainee client can map them to status codes and back.
"""


class RelayError(Exception):
    """Base exception for relay errors."""

    pass


class ConnectTimeout(RelayError):
    """Raised when the upstream connection does not open within the timeout."""

    pass


class TransportError(RelayError):
    """Raised when the upstream transport is refused, dropped or aborted."""

    pass


class NotReady(RelayError):
    """Raised when a send is attempted before the session handshake completes."""

    pass


class MalformedEvent(RelayError):
    """Raised when an inbound upstream message cannot be parsed."""

    pass


class MalformedAudio(RelayError):
    """Raised when an audio payload is not valid base64 PCM16."""

    pass
