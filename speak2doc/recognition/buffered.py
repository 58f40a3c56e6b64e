"""Voice-activity buffered batch transcription.

One parametrized adapter drives the VolumeGate on every captured frame and,
at each utterance boundary, uploads the utterance as a WAV file to a
provider-specific transcription endpoint. Provider differences (endpoint,
tuning constants, form fields, language format) live in thin
`BatchProviderDriver` subclasses.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import aiohttp
import numpy as np

from ..audio.vad import VolumeGate
from ..audio.wav import concatenate_frames, encode_wav
from ..errors import TranscriptionRequestError
from ..models.audio import AudioFrame
from ..models.recognition import BackendSelection
from ..models.settings import RecognitionSettings
from .base import AbstractRecognitionAdapter, CancellationToken

logger = logging.getLogger(__name__)


class BatchProviderDriver(ABC):
    """Provider-specific parameters and request formatting."""

    selection: BackendSelection
    service_name: str = ""

    # Voice activity tuning
    noise_threshold: float = 0.01
    silence_holdoff_ms: float = 1500
    max_buffer_frames: Optional[int] = None
    max_utterance_ms: Optional[float] = None

    def __init__(self, settings: RecognitionSettings):
        self.endpoint = settings.endpoint_for(self.selection)
        self.sample_rate = settings.sample_rate

    def create_gate(self) -> VolumeGate:
        return VolumeGate(noise_threshold=self.noise_threshold,
                          silence_holdoff_ms=self.silence_holdoff_ms,
                          max_buffer_frames=self.max_buffer_frames,
                          max_utterance_ms=self.max_utterance_ms)

    def format_language(self, language: str) -> Optional[str]:
        """Language value sent with each upload; None omits the field."""
        return language

    def extra_fields(self) -> Dict[str, str]:
        return {}

    def build_form(self, wav_bytes: bytes, language: str) -> aiohttp.FormData:
        form = aiohttp.FormData()
        form.add_field("audio", wav_bytes, filename="audio.wav", content_type="audio/wav")
        formatted = self.format_language(language)
        if formatted:
            form.add_field("language", formatted)
        for name, value in self.extra_fields().items():
            form.add_field(name, value)
        return form

    @abstractmethod
    def parse_response(self, payload: Dict[str, Any]) -> str:
        """Extract the transcript text from a successful response body."""
        pass


class BufferedBatchAdapter(AbstractRecognitionAdapter):
    """Buffers frames between utterance boundaries and uploads each utterance.

    Uploads go through a single worker task so at most one request is in
    flight and transcripts are appended in utterance order. Capture resumes
    into a fresh buffer immediately after each boundary.
    """

    supports_language_update = True

    def __init__(self, settings: RecognitionSettings, driver: BatchProviderDriver, **kwargs):
        super().__init__(settings, **kwargs)
        self.driver = driver
        self.selection = driver.selection
        self.gate = driver.create_gate()

        self._frames: List[np.ndarray] = []
        self._mic_stream = None
        self._http: Optional[aiohttp.ClientSession] = None
        self._upload_queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None

        # Statistics
        self.utterances_finalized = 0
        self.utterances_transcribed = 0
        self.failed_requests = 0

    async def start(self) -> None:
        if self._listening:
            return

        logger.info(f"Starting {self.driver.service_name} buffered adapter "
                    f"(language={self.language}, endpoint={self.driver.endpoint})")
        self._token = token = CancellationToken()
        self._frames = []
        self.gate.reset()
        self._upload_queue = asyncio.Queue()
        http = self._http = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.settings.request_timeout))
        self._worker = token.track(
            asyncio.ensure_future(self._upload_loop(self._upload_queue, token)))

        try:
            mic_stream = await self.microphone.acquire(self._on_frame)
        except Exception:
            token.cancel()
            await self._discard_session(http)
            raise
        if token.cancelled:
            logger.info(f"{self.driver.service_name} start cancelled while acquiring the microphone")
            mic_stream.release()
            await self._discard_session(http)
            return

        self._mic_stream = mic_stream
        self._listening = True
        logger.info(f"{self.driver.service_name} buffered adapter started")

    async def _discard_session(self, http: aiohttp.ClientSession) -> None:
        await http.close()
        if self._http is http:
            self._http = None
            self._worker = None

    def _on_frame(self, frame: AudioFrame) -> None:
        """Audio callback: runs on the loop thread for every captured frame."""
        if not self._listening:
            return
        self._frames.append(frame.samples)
        decision = self.gate.classify(frame, len(self._frames))
        if decision.finalize:
            logger.debug(f"Utterance boundary ({decision.reason}) after {len(self._frames)} frames")
            self._finalize_utterance(decision.had_speech)

    def _finalize_utterance(self, had_speech: bool) -> None:
        """Hand the current buffer to the upload worker and start a fresh one."""
        frames, self._frames = self._frames, []
        if not frames:
            return
        if not had_speech:
            logger.debug(f"Discarding {len(frames)} frames without speech")
            return
        self.utterances_finalized += 1
        self._upload_queue.put_nowait(concatenate_frames(frames))

    async def _upload_loop(self, queue: asyncio.Queue, token: CancellationToken) -> None:
        while True:
            samples = await queue.get()
            try:
                if samples is None:
                    break
                await self._transcribe(samples, token)
            except TranscriptionRequestError as e:
                self.failed_requests += 1
                logger.error(f"{self.driver.service_name} transcription failed, "
                             f"continuing to listen: {e}")
            except Exception as e:
                self.failed_requests += 1
                logger.error(f"Unexpected error transcribing utterance: {e}", exc_info=True)
            finally:
                queue.task_done()

    async def _transcribe(self, samples: np.ndarray, token: CancellationToken) -> None:
        """Encode and upload one utterance, then append the returned text."""
        wav_bytes = encode_wav(samples, self.driver.sample_rate)
        logger.debug(f"Uploading utterance: {len(samples)} samples, {len(wav_bytes)} bytes WAV")
        self._notify_transcription_start()

        start_time = time.time()
        form = self.driver.build_form(wav_bytes, self.language)
        try:
            async with self._http.post(self.driver.endpoint, data=form) as response:
                if response.status < 200 or response.status >= 300:
                    error_text = await response.text()
                    raise TranscriptionRequestError(
                        f"{self.driver.service_name} endpoint returned "
                        f"{response.status}: {error_text}", status=response.status)
                payload = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise TranscriptionRequestError(f"{self.driver.service_name} request failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise TranscriptionRequestError(f"{self.driver.service_name} request timed out") from e
        except ValueError as e:
            raise TranscriptionRequestError(f"{self.driver.service_name} returned invalid JSON: {e}") from e

        if not isinstance(payload, dict):
            raise TranscriptionRequestError(f"{self.driver.service_name} returned unexpected body: {payload!r}")
        text = self.driver.parse_response(payload)
        processing_time = time.time() - start_time

        if token.cancelled:
            logger.info(f"Dropping late transcript after stop: '{text[:50]}'")
            return
        if not text:
            logger.debug(f"No text in {self.driver.service_name} response ({processing_time:.3f}s)")
            return

        self.utterances_transcribed += 1
        logger.info(f"{self.driver.service_name}: '{text}' ({processing_time:.3f}s)")
        self._emit(self.transcript.append(text))

    async def stop(self) -> None:
        if not self._listening:
            # A start still in progress checks the token and backs out
            self._token.cancel()
            return
        self._listening = False

        token = self._token
        try:
            if self._mic_stream is not None:
                self._mic_stream.release()
            # Finalize any remaining audio
            if self._frames and self.gate.speech_detected:
                logger.debug(f"Finalizing {len(self._frames)} frames on stop")
                self._finalize_utterance(True)
            self._frames = []
            self.gate.reset()

            self._upload_queue.put_nowait(None)
            try:
                await asyncio.wait_for(self._worker, timeout=self.settings.stop_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Pending {self.driver.service_name} upload did not finish "
                               f"within {self.settings.stop_timeout}s; cancelled")
        finally:
            token.cancel()
            self._mic_stream = None
            self._worker = None
            if self._http is not None:
                await self._http.close()
                self._http = None
            logger.info(f"{self.driver.service_name} buffered adapter stopped")

    def update_language(self, language: str) -> None:
        self.language = language
        logger.info(f"Updated {self.driver.service_name} language to: {language}")

    def get_stats(self) -> Dict[str, Any]:
        return {
            "service": self.driver.service_name,
            "language": self.language,
            "listening": self._listening,
            "buffered_frames": len(self._frames),
            "utterances_finalized": self.utterances_finalized,
            "utterances_transcribed": self.utterances_transcribed,
            "failed_requests": self.failed_requests,
        }
