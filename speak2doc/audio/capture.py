"""Microphone capture that delivers float32 frames into the asyncio loop."""

import asyncio
import logging
import time
from typing import Callable, Optional

import numpy as np
import pyaudio

from ..errors import MicrophonePermissionError, UnsupportedError
from ..models.audio import AudioFrame

logger = logging.getLogger(__name__)

FrameCallback = Callable[[AudioFrame], None]


class MicrophoneStream:
    """A live PyAudio input stream owned by exactly one adapter."""

    def __init__(self,
                 pyaudio_instance: pyaudio.PyAudio,
                 loop: asyncio.AbstractEventLoop,
                 on_frame: FrameCallback):
        self.pyaudio_instance = pyaudio_instance
        self.loop = loop
        self.on_frame = on_frame
        self.stream: Optional[pyaudio.Stream] = None
        self.total_frames = 0
        self.start_time = time.time()
        self._released = False

    @property
    def is_active(self) -> bool:
        return not self._released

    def _stream_callback(self, in_data, frame_count, time_info, status):
        """Runs on the PortAudio thread: copy the block and hop to the loop."""
        if self._released:
            return (None, pyaudio.paComplete)
        samples = np.frombuffer(in_data, dtype=np.float32).copy()
        try:
            self.loop.call_soon_threadsafe(self._deliver, samples)
        except RuntimeError:
            # Event loop already closed
            return (None, pyaudio.paComplete)
        return (None, pyaudio.paContinue)

    def _deliver(self, samples: np.ndarray) -> None:
        if self._released:
            return
        self.total_frames += 1
        frame = AudioFrame(samples=samples,
                           timestamp=self.loop.time(),
                           sequence_number=self.total_frames)
        try:
            self.on_frame(frame)
        except Exception as e:
            logger.error(f"Error in frame callback: {e}", exc_info=True)

    def release(self) -> None:
        """Stop and close the stream. Safe to call more than once."""
        if self._released:
            return
        self._released = True
        try:
            if self.stream is not None:
                self.stream.stop_stream()
                self.stream.close()
        except OSError as e:
            logger.warning(f"Error closing audio stream: {e}")
        finally:
            self.stream = None
            self.pyaudio_instance.terminate()
            logger.info(f"Microphone released after {self.total_frames} frames")


class PyAudioMicrophone:
    """Opens the default input device as mono float32 at the given rate."""

    def __init__(self,
                 sample_rate: int = 16000,
                 chunk_size: int = 4096,
                 channels: int = 1):
        """Initialize microphone parameters.

        Args:
            sample_rate: Audio sample rate (16kHz matches all transcription endpoints)
            chunk_size: Samples per delivered frame
            channels: Number of audio channels (1 for mono)
        """
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self.channels = channels

    async def acquire(self, on_frame: FrameCallback) -> MicrophoneStream:
        """Open the microphone; frames arrive on the running loop via `on_frame`."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._open, loop, on_frame)

    def _open(self, loop: asyncio.AbstractEventLoop, on_frame: FrameCallback) -> MicrophoneStream:
        pyaudio_instance = pyaudio.PyAudio()
        try:
            device = pyaudio_instance.get_default_input_device_info()
        except (IOError, OSError) as e:
            pyaudio_instance.terminate()
            raise UnsupportedError(f"No audio input device available: {e}") from e

        mic_stream = MicrophoneStream(pyaudio_instance, loop, on_frame)
        try:
            mic_stream.stream = pyaudio_instance.open(
                format=pyaudio.paFloat32,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                frames_per_buffer=self.chunk_size,
                stream_callback=mic_stream._stream_callback,
            )
        except (IOError, OSError) as e:
            pyaudio_instance.terminate()
            raise MicrophonePermissionError(
                f"Could not open microphone '{device.get('name')}': {e}") from e

        logger.info(f"Audio stream opened on '{device.get('name')}': "
                    f"{self.sample_rate}Hz, {self.chunk_size} samples/frame")
        return mic_stream
