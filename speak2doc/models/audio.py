"""Audio-related data models."""

from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass
class AudioFrame:
    """A single block of float32 PCM samples in [-1.0, 1.0]."""
    samples: np.ndarray
    timestamp: float  # Time when this frame was captured (loop clock, seconds)
    sequence_number: int = 0

    @property
    def sample_count(self) -> int:
        return len(self.samples)


@dataclass
class SpeechState:
    """Voice activity state owned by one adapter instance."""
    is_speaking: bool = False
    last_speech_timestamp: float = 0.0
    accumulated_text: str = ""
    silence_start_timestamp: Optional[float] = None

    def reset(self) -> None:
        """Return to idle after an utterance has been finalized."""
        self.is_speaking = False
        self.silence_start_timestamp = None
