"""Recognition orchestrator: owns one live backend adapter at a time."""

import logging
import time
from typing import Callable, Optional

from ..errors import SpeechError, StartError
from ..models.recognition import BackendSelection, StartResult
from ..models.settings import RecognitionSettings
from ..models.transcription import TranscriptAccumulator
from .base import AbstractRecognitionAdapter, TranscriptCallback, ErrorCallback, StartCallback, default_microphone
from .buffered import BufferedBatchAdapter
from .duration import DurationCallback, DurationTracker
from .native import NativeStreamingAdapter
from .providers import create_driver
from .realtime import RealtimeStreamingAdapter

logger = logging.getLogger(__name__)

AdapterFactory = Callable[..., AbstractRecognitionAdapter]


def create_adapter(selection: BackendSelection,
                   settings: RecognitionSettings,
                   **kwargs) -> AbstractRecognitionAdapter:
    """Build the adapter for `selection`; kwargs are passed to the adapter."""
    if selection == BackendSelection.NATIVE_STREAMING:
        return NativeStreamingAdapter(settings, **kwargs)
    if selection == BackendSelection.REALTIME_ASSEMBLYAI:
        return RealtimeStreamingAdapter(settings, **kwargs)
    return BufferedBatchAdapter(settings, create_driver(selection, settings), **kwargs)


class RecognitionOrchestrator:
    """Selects, starts, stops and swaps recognition backends.

    Only one adapter exists at a time. The transcript accumulator belongs
    to the orchestrator and survives backend swaps and restarts until
    `reset_transcript()` is called.
    """

    def __init__(self,
                 settings: RecognitionSettings,
                 on_transcript_update: TranscriptCallback,
                 on_duration_update: Optional[DurationCallback] = None,
                 on_transcription_start: Optional[StartCallback] = None,
                 on_error: Optional[ErrorCallback] = None,
                 adapter_factory: Optional[AdapterFactory] = None,
                 microphone=None,
                 clock: Optional[Callable[[], float]] = None):
        self.settings = settings
        self.on_transcript_update = on_transcript_update
        self.on_transcription_start = on_transcription_start
        self.on_error = on_error
        self.adapter_factory = adapter_factory or create_adapter
        self.microphone = microphone if microphone is not None else default_microphone(settings)

        self.transcript = TranscriptAccumulator()
        self.duration = DurationTracker(on_update=on_duration_update,
                                        clock=clock or time.monotonic)

        self._requested_api = settings.backend
        self._fell_back_from: Optional[BackendSelection] = None
        self._closed = False
        self._generation = 0
        self.adapter = self._build_adapter(settings.backend)

    @property
    def requested_api(self) -> BackendSelection:
        return self._requested_api

    @property
    def fell_back_from(self) -> Optional[BackendSelection]:
        """The selection that failed to start, if the native backend replaced it."""
        return self._fell_back_from

    def _build_adapter(self, selection: BackendSelection,
                       settings: Optional[RecognitionSettings] = None) -> AbstractRecognitionAdapter:
        adapter = self.adapter_factory(selection,
                                       settings or self.settings,
                                       on_transcript_update=self.on_transcript_update,
                                       on_error=self._handle_adapter_error,
                                       on_transcription_start=self.on_transcription_start,
                                       transcript=self.transcript,
                                       microphone=self.microphone)
        logger.debug(f"Created adapter {adapter!r}")
        return adapter

    def _handle_adapter_error(self, error: SpeechError) -> None:
        """The adapter has already stopped itself."""
        logger.error(f"Recognition stopped unexpectedly: {error}")
        self.duration.stop()
        if self.on_error:
            try:
                self.on_error(error)
            except Exception as e:
                logger.error(f"Error in error callback: {e}", exc_info=True)

    def _notify_transcription_start(self) -> None:
        if self.on_transcription_start:
            try:
                self.on_transcription_start()
            except Exception as e:
                logger.error(f"Error in transcription start callback: {e}", exc_info=True)

    async def _replace_adapter(self, selection: BackendSelection,
                               settings: Optional[RecognitionSettings] = None) -> None:
        """Fully release the current adapter before the next one is built."""
        await self.adapter.stop()
        self.adapter = self._build_adapter(selection, settings)

    def _cancelled_result(self, requested: BackendSelection,
                          error: Optional[SpeechError] = None) -> StartResult:
        logger.info(f"Start of {requested.value} was cancelled before it completed")
        return StartResult(active=self.adapter.selection, requested=requested,
                           cancelled=True, error=error)

    async def start(self) -> StartResult:
        """Start capturing with the selected backend.

        A non-native backend that fails to start is replaced by native
        streaming once; StartError is raised when that fails too. A stop(),
        change_api() or update_language() issued while the start is pending
        cancels it and the result has `cancelled` set.
        """
        if self._closed:
            raise StartError("Orchestrator is closed")
        if self.adapter.is_listening():
            return StartResult(active=self.adapter.selection, requested=self._requested_api,
                               fell_back=self._fell_back_from is not None)

        generation = self._generation
        adapter = self.adapter
        requested = adapter.selection
        self._notify_transcription_start()
        try:
            await adapter.start()
        except SpeechError as error:
            if generation != self._generation:
                return self._cancelled_result(requested, error)
            if requested == BackendSelection.NATIVE_STREAMING:
                logger.error(f"Native streaming recognition failed to start: {error}")
                raise StartError(f"Failed to start native streaming recognition: {error}",
                                 original_error=error) from error
            logger.warning(f"{requested.value} failed to start ({error}); "
                           f"falling back to native streaming")
            return await self._start_fallback(requested, error, generation)

        if generation != self._generation or not adapter.is_listening():
            return self._cancelled_result(requested)

        self.duration.start()
        logger.info(f"Recognition started with {requested.value}")
        return StartResult(active=requested, requested=requested)

    async def _start_fallback(self, requested: BackendSelection, error: SpeechError,
                              generation: int) -> StartResult:
        await self._replace_adapter(BackendSelection.NATIVE_STREAMING)
        if generation != self._generation:
            return self._cancelled_result(requested, error)

        adapter = self.adapter
        try:
            await adapter.start()
        except SpeechError as fallback_error:
            if generation != self._generation:
                return self._cancelled_result(requested, fallback_error)
            logger.error(f"Fallback to native streaming failed: {fallback_error}")
            raise StartError(f"Failed to start {requested.value} and native fallback: {fallback_error}",
                             original_error=error) from fallback_error

        if generation != self._generation or not adapter.is_listening():
            return self._cancelled_result(requested, error)

        self._fell_back_from = requested
        self.duration.start()
        logger.info(f"Recognition started with native fallback (requested {requested.value})")
        return StartResult(active=BackendSelection.NATIVE_STREAMING,
                           requested=requested,
                           fell_back=True,
                           error=error)

    async def stop(self) -> None:
        """Stop the active adapter and freeze the duration. Idempotent.

        Also cancels a start() that has not completed yet.
        """
        self._generation += 1
        try:
            await self.adapter.stop()
        finally:
            self.duration.stop()

    def is_listening(self) -> bool:
        return self.adapter.is_listening()

    async def change_api(self, selection: BackendSelection) -> None:
        """Switch backends; the caller restarts if it wants to keep listening."""
        logger.info(f"Changing recognition backend: {self.adapter.selection.value} -> {selection.value}")
        await self.stop()
        settings = self.settings.with_backend(selection)
        await self._replace_adapter(selection, settings)
        self.settings = settings
        self._requested_api = selection
        self._fell_back_from = None

    async def update_language(self, language: str) -> None:
        """Stop if listening and apply the new language. Does not restart."""
        logger.info(f"Updating recognition language to: {language}")
        await self.stop()
        settings = self.settings.with_language(language)
        if self.adapter.supports_language_update:
            self.adapter.update_language(language)
        else:
            await self._replace_adapter(self.adapter.selection, settings)
        self.settings = settings

    async def force_finalize(self) -> None:
        """Finalize pending speech by stopping the adapter, without restarting.

        Duration keeps running until stop() is called.
        """
        logger.info("Forcing finalization of the current utterance")
        self._generation += 1
        await self.adapter.stop()

    def get_api(self) -> BackendSelection:
        return self.adapter.selection

    def get_duration(self) -> int:
        return self.duration.elapsed_ms

    def get_transcript(self) -> str:
        return self.transcript.text

    def reset_transcript(self) -> None:
        self.transcript.reset()
        self.duration.reset()

    async def close(self) -> None:
        """Stop everything; the orchestrator cannot be restarted afterwards."""
        if self._closed:
            return
        self._closed = True
        await self.stop()
        logger.info("Recognition orchestrator closed")
