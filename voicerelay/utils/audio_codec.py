"""
Audio codec for the relay's transport format.

Captured audio is float32 in [-1, 1]; on the wire it is mono 24 kHz signed
16-bit little-endian PCM, base64-encoded so it can ride inside JSON events.
All functions here are pure.
"""

import base64
import binascii
from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np

from voicerelay.config.constants import (
    BYTES_PER_SAMPLE,
    DEFAULT_SAMPLE_RATE,
    PCM16_MAX,
    PCM16_MIN,
)
from voicerelay.exceptions import MalformedAudio

SampleInput = Union[np.ndarray, Sequence[float]]


@dataclass
class PlaybackBuffer:
    """Decoded audio ready for playback."""

    samples: np.ndarray  # float32, mono
    sample_rate: int = DEFAULT_SAMPLE_RATE

    @property
    def duration(self) -> float:
        """Duration in seconds."""
        return len(self.samples) / float(self.sample_rate)

    def __len__(self) -> int:
        return len(self.samples)


class AudioCodec:
    """Conversions between float samples and base64 PCM16 payloads."""

    @staticmethod
    def to_pcm16(samples: SampleInput) -> bytes:
        """
        Convert float samples to 16-bit little-endian PCM bytes.

        Out-of-range samples are clipped to the representable extremes,
        never wrapped.
        """
        arr = np.asarray(samples, dtype=np.float64).reshape(-1)
        arr = np.nan_to_num(arr, nan=0.0)
        arr = np.clip(arr, -1.0, 1.0)
        scaled = np.where(arr < 0, arr * -PCM16_MIN, arr * PCM16_MAX)
        pcm = np.clip(np.round(scaled), PCM16_MIN, PCM16_MAX).astype("<i2")
        return pcm.tobytes()

    @staticmethod
    def from_pcm16(data: bytes) -> np.ndarray:
        """
        Convert 16-bit little-endian PCM bytes to float32 samples.

        Raises:
            MalformedAudio: If the byte length is not a whole number of samples
        """
        if len(data) % BYTES_PER_SAMPLE != 0:
            raise MalformedAudio(
                f"PCM16 payload has odd length ({len(data)} bytes); partial sample"
            )
        pcm = np.frombuffer(data, dtype="<i2")
        return pcm.astype(np.float32) / float(-PCM16_MIN)

    @staticmethod
    def resample(samples: np.ndarray, from_rate: int, to_rate: int) -> np.ndarray:
        """Resample float samples using linear interpolation."""
        if from_rate == to_rate or len(samples) == 0:
            return samples
        new_length = max(1, int(round(len(samples) * to_rate / float(from_rate))))
        old_positions = np.arange(len(samples), dtype=np.float64)
        new_positions = np.linspace(0, len(samples) - 1, new_length)
        return np.interp(new_positions, old_positions, samples).astype(np.float32)

    @staticmethod
    def encode(samples: SampleInput, sample_rate: int = DEFAULT_SAMPLE_RATE) -> str:
        """
        Encode float samples in [-1, 1] as a base64 PCM16 payload.

        Args:
            samples: Mono float samples
            sample_rate: Rate the samples were captured at; resampled to the
                transport rate when it differs

        Returns:
            str: Base64 text of the little-endian PCM16 bytes
        """
        arr = np.asarray(samples, dtype=np.float32).reshape(-1)
        if sample_rate != DEFAULT_SAMPLE_RATE:
            arr = AudioCodec.resample(arr, sample_rate, DEFAULT_SAMPLE_RATE)
        return base64.b64encode(AudioCodec.to_pcm16(arr)).decode("ascii")

    @staticmethod
    def decode(payload: str) -> PlaybackBuffer:
        """
        Decode a base64 PCM16 payload into a 24 kHz mono playback buffer.

        Raises:
            MalformedAudio: If the payload is not base64 or decodes to a
                partial sample
        """
        try:
            raw = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            raise MalformedAudio(f"Audio payload is not valid base64: {e}") from e
        return PlaybackBuffer(samples=AudioCodec.from_pcm16(raw))
