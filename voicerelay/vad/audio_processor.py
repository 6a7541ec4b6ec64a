import numpy as np


LEVEL_SCALE = 255.0


def to_float32_mono(audio_data, sample_width, channels):
    """
    Convert raw little-endian PCM bytes to a float32 mono numpy array (-1 to 1).
    Supports PCM16, PCM24 and float32 input; multi-channel input is averaged.
    """
    if sample_width == 2:
        if len(audio_data) % 2:
            raise ValueError("Invalid PCM16 data: odd number of bytes")
        arr = np.frombuffer(audio_data, dtype="<i2").astype(np.float32) / 32768.0

    elif sample_width == 3:
        if len(audio_data) % 3:
            raise ValueError("Invalid PCM24 data: length not a multiple of 3")
        raw = np.frombuffer(audio_data, dtype=np.uint8).reshape(-1, 3).astype(np.int32)
        values = raw[:, 0] | (raw[:, 1] << 8) | (raw[:, 2] << 16)
        # Sign-extend from 24 bits
        values = np.where(values & 0x800000, values - 0x1000000, values)
        arr = values.astype(np.float32) / 8388608.0  # 2^23 for 24-bit

    elif sample_width == 4:
        arr = np.frombuffer(audio_data, dtype="<f4").astype(np.float32)
        if np.any(np.isnan(arr)):
            raise NotImplementedError("Audio conversion for this format is not implemented.")

    else:
        raise NotImplementedError(
            f"Audio conversion for sample_width={sample_width}, channels={channels} is not implemented."
        )

    if channels > 1:
        usable = len(arr) - (len(arr) % channels)
        arr = arr[:usable].reshape(-1, channels).mean(axis=1).astype(np.float32)
    return arr


def frame_level(samples):
    """
    Level of one audio frame on the 0-255 byte scale.

    The mean absolute amplitude of the frame, scaled so full-scale audio reads
    255. Empty frames read 0.
    """
    arr = np.asarray(samples, dtype=np.float32)
    if arr.size == 0:
        return 0.0
    level = float(np.mean(np.abs(np.nan_to_num(arr)))) * LEVEL_SCALE
    return min(level, LEVEL_SCALE)
