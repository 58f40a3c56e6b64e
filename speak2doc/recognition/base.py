"""Abstract base class shared by every recognition backend adapter."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional, Set

from ..errors import SpeechError, UnsupportedError
from ..models.recognition import BackendSelection
from ..models.settings import RecognitionSettings
from ..models.transcription import TranscriptAccumulator

logger = logging.getLogger(__name__)

TranscriptCallback = Callable[[str], None]
ErrorCallback = Callable[[SpeechError], None]
StartCallback = Callable[[], None]


class CancellationToken:
    """Invalidates the asynchronous work of one capture session.

    Every upload or socket task started during a session is tracked here so
    stop() can cancel it; results that arrive late check `cancelled` and are
    dropped instead of reaching the callbacks of a torn-down adapter. A
    stop() that arrives while start() is still awaiting a handshake or the
    microphone cancels the token too; start() then releases whatever it
    acquired and returns without listening.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._tasks: Set[asyncio.Task] = set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def track(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def cancel(self) -> None:
        self._cancelled = True
        for task in list(self._tasks):
            if not task.done():
                task.cancel()


def _log_task_exception(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"Background recognition task failed: {error}", exc_info=error)


def default_microphone(settings: RecognitionSettings):
    """PyAudio microphone configured from the injected settings."""
    from ..audio.capture import PyAudioMicrophone
    return PyAudioMicrophone(sample_rate=settings.sample_rate,
                             chunk_size=settings.buffer_size)


class AbstractRecognitionAdapter(ABC):
    """Capture + transcribe lifecycle for one backend.

    Implementations own their microphone stream, remote connections and
    speech state exclusively; nothing is shared between adapter instances
    except the transcript accumulator handed in by the orchestrator.
    """

    selection: BackendSelection
    supports_language_update = False

    def __init__(self,
                 settings: RecognitionSettings,
                 on_transcript_update: TranscriptCallback,
                 on_error: Optional[ErrorCallback] = None,
                 on_transcription_start: Optional[StartCallback] = None,
                 transcript: Optional[TranscriptAccumulator] = None,
                 microphone=None):
        self.settings = settings
        self.on_transcript_update = on_transcript_update
        self.on_error = on_error
        self.on_transcription_start = on_transcription_start
        self.transcript = transcript if transcript is not None else TranscriptAccumulator()
        self.microphone = microphone if microphone is not None else default_microphone(settings)
        self.language = settings.language
        self._listening = False
        self._token = CancellationToken()

    @abstractmethod
    async def start(self) -> None:
        """Acquire the microphone and begin delivering transcripts."""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Finalize in-flight speech and release every resource. Idempotent."""
        pass

    def is_listening(self) -> bool:
        return self._listening

    def update_language(self, language: str) -> None:
        raise UnsupportedError(f"{self.__class__.__name__} cannot change language in place")

    def _emit(self, text: str) -> None:
        """Deliver the rendered transcript to the caller."""
        try:
            self.on_transcript_update(text)
        except Exception as e:
            logger.error(f"Error in transcript callback: {e}", exc_info=True)

    def _notify_transcription_start(self) -> None:
        if self.on_transcription_start:
            try:
                self.on_transcription_start()
            except Exception as e:
                logger.error(f"Error in transcription start callback: {e}", exc_info=True)

    async def _fail(self, error: SpeechError) -> None:
        """Stop after an error while listening and report it without raising."""
        if not self._listening:
            logger.debug(f"Ignoring error after stop: {error}")
            return
        logger.error(f"{self.__class__.__name__} stopped unexpectedly: {error}")
        try:
            await self.stop()
        finally:
            if self.on_error:
                try:
                    self.on_error(error)
                except Exception as e:
                    logger.error(f"Error in error callback: {e}", exc_info=True)

    def _schedule_failure(self, error: SpeechError) -> asyncio.Future:
        """Must be called on the loop thread."""
        task = asyncio.ensure_future(self._fail(error))
        task.add_done_callback(_log_task_exception)
        return task

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} selection={self.selection.value} listening={self._listening}>"
