"""
Client-side voice activity helpers.

- audio_processor: raw PCM to float conversion and 0-255 frame levels
- endpointer: silence-based end-of-utterance detection
"""

from .audio_processor import frame_level, to_float32_mono
from .endpointer import EndpointerState, UtteranceEndpointer
