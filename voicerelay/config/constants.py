"""
Constants and configuration values used throughout the relay.

This module defines the defaults shared by the configuration models, the
upstream connection and the client tooling, so every part of the code base
agrees on the wire format and the timing knobs.
"""

# Logger name used throughout the application
LOGGER_NAME = "voicerelay"

# Upstream voice service
DEFAULT_MODEL = "gpt-4o-realtime-preview-2024-10-01"
DEFAULT_BASE_URL = "wss://api.openai.com"
VOICE = "shimmer"

# Instructions sent in the session.update issued right after session.created
DEFAULT_INSTRUCTIONS = (
    "You are a Marigold Hotel customer service agent. Be concise and direct in "
    "your responses. Keep your answers brief but helpful."
)

# Audio transport: mono 24kHz 16-bit signed little-endian PCM
DEFAULT_SAMPLE_RATE = 24000
DEFAULT_CHANNELS = 1
DEFAULT_BITS_PER_SAMPLE = 16
BYTES_PER_SAMPLE = DEFAULT_BITS_PER_SAMPLE // 8
PCM16_MAX = 32767
PCM16_MIN = -32768

# Connection timing
DEFAULT_CONNECT_TIMEOUT = 5.0  # seconds to wait for the upstream open handshake
DEFAULT_PING_INTERVAL = 20
DEFAULT_PING_TIMEOUT = 20
DEFAULT_CLOSE_TIMEOUT = 10

# Endpointing (levels are on the 0-255 byte scale)
DEFAULT_SILENCE_THRESHOLD = 10.0
DEFAULT_QUIET_DURATION = 1.5  # seconds of sub-threshold level ending a turn
DEFAULT_SMOOTHING_WINDOW = 1

# Client polling cadence
DEFAULT_RELAY_URL = "http://localhost:8000/api/ws"
DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_REQUEST_TIMEOUT = 10.0
MAX_POLL_BACKOFF = 10.0
