"""Data models for the speak2doc application."""

from .audio import AudioFrame, SpeechState
from .transcription import TranscriptAccumulator
from .recognition import BackendSelection, StartResult, DurationRecord, BUFFERED_SELECTIONS
from .settings import RecognitionSettings, DEFAULT_ENDPOINTS

__all__ = [
    "AudioFrame",
    "SpeechState",
    "TranscriptAccumulator",
    "BackendSelection",
    "BUFFERED_SELECTIONS",
    "StartResult",
    "DurationRecord",
    "RecognitionSettings",
    "DEFAULT_ENDPOINTS",
]
