"""Pytest configuration and fixtures for speak2doc tests."""

import pytest
import logging
from unittest.mock import Mock
import numpy as np

from speak2doc.models.audio import AudioFrame
from speak2doc.models.recognition import BackendSelection
from speak2doc.models.settings import RecognitionSettings


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

FRAME_SAMPLES = 1600


class FakeMicrophoneStream:
    """Stands in for a live PyAudio stream."""

    def __init__(self, on_frame):
        self.on_frame = on_frame
        self.release_count = 0

    @property
    def released(self) -> bool:
        return self.release_count > 0

    def release(self):
        self.release_count += 1


class FakeMicrophone:
    """Microphone whose frames are pushed by the test on the loop thread."""

    def __init__(self, error=None):
        self.error = error
        self.streams = []

    async def acquire(self, on_frame):
        if self.error is not None:
            raise self.error
        stream = FakeMicrophoneStream(on_frame)
        self.streams.append(stream)
        return stream

    @property
    def stream(self):
        return self.streams[-1] if self.streams else None

    def emit(self, samples, timestamp: float):
        stream = self.stream
        if stream is not None and not stream.released:
            stream.on_frame(AudioFrame(samples=samples, timestamp=timestamp))


@pytest.fixture
def fake_microphone():
    """Microphone that never touches audio hardware."""
    return FakeMicrophone()


@pytest.fixture
def failing_microphone():
    """Factory for microphones whose acquire() raises the given error."""
    return FakeMicrophone


@pytest.fixture
def loud_frame():
    """A 100 ms frame well above every provider's noise threshold."""
    return np.full(FRAME_SAMPLES, 0.5, dtype=np.float32)


@pytest.fixture
def silent_frame():
    """A 100 ms frame of digital silence."""
    return np.zeros(FRAME_SAMPLES, dtype=np.float32)


@pytest.fixture
def sine_samples():
    """Generate 1024 float samples of a 440 Hz sine wave."""
    sample_rate = 16000
    duration = 1024 / sample_rate
    t = np.linspace(0, duration, 1024, False)
    return (0.8 * np.sin(2 * np.pi * 440 * t)).astype(np.float32)


@pytest.fixture
def recognition_settings():
    """Settings with short timeouts for tests."""
    return RecognitionSettings(backend=BackendSelection.NATIVE_STREAMING,
                               stop_timeout=1.0,
                               request_timeout=5.0,
                               token_url=None)


@pytest.fixture
def transcript_updates():
    """Collects every transcript update delivered to the callback."""
    updates = []
    callback = Mock(side_effect=updates.append)
    callback.updates = updates
    return callback
