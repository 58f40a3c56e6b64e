"""Speech recognition backends and the orchestrator that switches between them."""

from .base import AbstractRecognitionAdapter, CancellationToken
from .buffered import BatchProviderDriver, BufferedBatchAdapter
from .duration import DurationTracker
from .native import NativeStreamingAdapter
from .orchestrator import RecognitionOrchestrator, create_adapter
from .providers import (AssemblyAIDriver, AssemblyAINanoDriver, GoogleSpeechDriver,
                        WhisperDriver, create_driver)
from .publisher import TranscriptPublisher
from .realtime import AssemblyAIRealtimeSession, RealtimeStreamingAdapter

__all__ = [
    "AbstractRecognitionAdapter",
    "CancellationToken",
    "BatchProviderDriver",
    "BufferedBatchAdapter",
    "DurationTracker",
    "NativeStreamingAdapter",
    "RecognitionOrchestrator",
    "create_adapter",
    "AssemblyAIDriver",
    "AssemblyAINanoDriver",
    "GoogleSpeechDriver",
    "WhisperDriver",
    "create_driver",
    "TranscriptPublisher",
    "AssemblyAIRealtimeSession",
    "RealtimeStreamingAdapter",
]
