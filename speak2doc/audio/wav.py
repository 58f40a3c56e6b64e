"""PCM framing helpers: float frames to 16-bit WAV and raw PCM."""

import struct
from typing import Iterable, Sequence, Union

import numpy as np

WAV_HEADER_SIZE = 44
BITS_PER_SAMPLE = 16
CHANNELS = 1

Samples = Union[np.ndarray, Sequence[float]]


def concatenate_frames(frames: Iterable[Samples]) -> np.ndarray:
    """Join a sequence of float frames into one contiguous float32 array."""
    arrays = [np.asarray(frame, dtype=np.float32).ravel() for frame in frames]
    if not arrays:
        return np.zeros(0, dtype=np.float32)
    return np.concatenate(arrays)


def float_to_wav_pcm(samples: Samples) -> np.ndarray:
    """Scale float samples to little-endian int16 the way WAV uploads expect.

    Samples are clamped to [-1, 1]; negative values scale by 32768 and
    non-negative values by 32767, truncating toward zero.
    """
    clamped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    scaled = np.where(clamped < 0, clamped * 32768.0, clamped * 32767.0)
    return np.trunc(scaled).astype("<i2")


def float_to_pcm16(samples: Samples) -> bytes:
    """Convert float samples to raw 16-bit PCM for streaming sessions.

    Symmetric scaling by 32767, truncating toward zero.
    """
    clamped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    return np.trunc(clamped * 32767.0).astype("<i2").tobytes()


def wav_header(sample_count: int, sample_rate: int) -> bytes:
    """Canonical 44-byte RIFF/WAVE header for mono 16-bit PCM."""
    block_align = CHANNELS * BITS_PER_SAMPLE // 8
    data_size = sample_count * block_align
    return struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        36 + data_size,
        b"WAVE",
        b"fmt ",
        16,                        # fmt chunk length
        1,                         # PCM
        CHANNELS,
        sample_rate,
        sample_rate * block_align,  # byte rate
        block_align,
        BITS_PER_SAMPLE,
        b"data",
        data_size,
    )


def encode_wav(samples: Samples, sample_rate: int) -> bytes:
    """Encode float samples as a complete mono 16-bit WAV file."""
    pcm = float_to_wav_pcm(samples)
    return wav_header(len(pcm), sample_rate) + pcm.tobytes()
