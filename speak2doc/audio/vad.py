"""RMS volume gate that finds utterance boundaries in a stream of frames."""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..models.audio import AudioFrame, SpeechState

logger = logging.getLogger(__name__)

REASON_SILENCE = "silence"
REASON_BUFFER_CAP = "buffer_cap"
REASON_TIME_CAP = "time_cap"


@dataclass
class GateDecision:
    """Result of classifying one frame."""
    speaking: bool
    volume: float
    finalize: bool = False
    reason: Optional[str] = None
    had_speech: bool = False  # The finalized utterance contained speech


def compute_volume(samples: np.ndarray) -> float:
    """Root-mean-square energy of a frame."""
    if len(samples) == 0:
        return 0.0
    data = np.asarray(samples, dtype=np.float64)
    return float(np.sqrt(np.mean(data * data)))


class VolumeGate:
    """Idle -> Speaking -> TrailingSilence -> Finalize state machine.

    Timestamps are seconds; thresholds are in milliseconds to match
    provider tuning tables. The gate resets itself to Idle whenever it
    returns a finalize decision.
    """

    def __init__(self,
                 noise_threshold: float,
                 silence_holdoff_ms: float,
                 max_buffer_frames: Optional[int] = None,
                 max_utterance_ms: Optional[float] = None):
        self.noise_threshold = noise_threshold
        self.silence_holdoff_ms = silence_holdoff_ms
        self.max_buffer_frames = max_buffer_frames
        self.max_utterance_ms = max_utterance_ms

        self.state = SpeechState()
        self.speech_detected = False  # Any speech since the last reset
        self._utterance_start: Optional[float] = None

    def classify(self, frame: AudioFrame, buffered_frames: int = 0) -> GateDecision:
        """Feed one frame; `buffered_frames` counts frames held including this one."""
        now = frame.timestamp
        if self._utterance_start is None:
            self._utterance_start = now

        volume = compute_volume(frame.samples)
        speaking = volume > self.noise_threshold

        if self.max_buffer_frames is not None and buffered_frames > self.max_buffer_frames:
            logger.debug(f"Forcing finalization after {buffered_frames} frames")
            return self._finalize(speaking, volume, REASON_BUFFER_CAP)

        if (self.max_utterance_ms is not None
                and (now - self._utterance_start) * 1000.0 >= self.max_utterance_ms):
            logger.debug(f"Forcing finalization after {self.max_utterance_ms}ms")
            return self._finalize(speaking, volume, REASON_TIME_CAP)

        if speaking:
            if not self.state.is_speaking:
                logger.debug(f"Speech started (volume={volume:.4f}, threshold={self.noise_threshold})")
            self.state.is_speaking = True
            self.state.last_speech_timestamp = now
            self.state.silence_start_timestamp = None
            self.speech_detected = True
        elif self.state.is_speaking:
            if self.state.silence_start_timestamp is None:
                self.state.silence_start_timestamp = now
            elif (now - self.state.silence_start_timestamp) * 1000.0 > self.silence_holdoff_ms:
                logger.debug(f"Silence hold-off reached "
                             f"({(now - self.state.silence_start_timestamp) * 1000.0:.0f}ms)")
                return self._finalize(False, volume, REASON_SILENCE)

        return GateDecision(speaking, volume)

    def _finalize(self, speaking: bool, volume: float, reason: str) -> GateDecision:
        had_speech = self.speech_detected or speaking
        self.reset()
        return GateDecision(speaking, volume, True, reason, had_speech)

    def reset(self) -> None:
        """Back to Idle for the next utterance."""
        self.state.reset()
        self.speech_detected = False
        self._utterance_start = None
