"""
Shared utilities for the voice relay.

- audio_codec: float samples <-> base64 PCM16 transport payloads
- retry_utils: exponential backoff for the polling client
"""

from .audio_codec import AudioCodec, PlaybackBuffer
from .retry_utils import RetryUtils
