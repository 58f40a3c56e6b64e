"""Native streaming backend: continuous recognition with interim results."""

import asyncio
import logging
from typing import Callable, Optional

from ..audio.wav import float_to_pcm16
from ..errors import BackendError, SpeechError
from ..models.audio import AudioFrame
from ..models.recognition import BackendSelection
from ..models.settings import RecognitionSettings
from .base import AbstractRecognitionAdapter, CancellationToken
from .google_streaming import GoogleStreamingRecognizer

logger = logging.getLogger(__name__)


def google_recognizer_factory(settings: RecognitionSettings, language: str) -> GoogleStreamingRecognizer:
    return GoogleStreamingRecognizer(credentials_path=settings.google_credentials_path,
                                     sample_rate=settings.sample_rate,
                                     language=language)


RecognizerFactory = Callable[[RecognitionSettings, str], GoogleStreamingRecognizer]


class NativeStreamingAdapter(AbstractRecognitionAdapter):
    """Delegates recognition to the platform streaming recognizer.

    Final results are appended to the transcript; the current interim
    hypothesis is shown after it without being stored.
    """

    selection = BackendSelection.NATIVE_STREAMING

    def __init__(self,
                 settings: RecognitionSettings,
                 recognizer_factory: Optional[RecognizerFactory] = None,
                 **kwargs):
        super().__init__(settings, **kwargs)
        self.recognizer_factory = recognizer_factory or google_recognizer_factory
        self.recognizer = None
        self.interim_text = ""
        self._mic_stream = None

    async def start(self) -> None:
        if self._listening:
            return

        loop = asyncio.get_running_loop()
        self._token = token = CancellationToken()
        self.interim_text = ""

        # Raises UnsupportedError when the capability is missing
        self.recognizer = recognizer = self.recognizer_factory(self.settings, self.language)

        def on_result(text: str, is_final: bool) -> None:
            self._call_soon(loop, self._handle_result, token, text, is_final)

        def on_error(error: Exception) -> None:
            self._call_soon(loop, self._handle_error, token, error)

        await loop.run_in_executor(None, recognizer.start, on_result, on_error)
        if token.cancelled:
            logger.info("Native streaming start cancelled while connecting")
            await self._discard_recognizer(loop, recognizer)
            return

        try:
            mic_stream = await self.microphone.acquire(self._on_frame)
        except Exception:
            await self._discard_recognizer(loop, recognizer)
            raise
        if token.cancelled:
            logger.info("Native streaming start cancelled while acquiring the microphone")
            mic_stream.release()
            await self._discard_recognizer(loop, recognizer)
            return

        self._mic_stream = mic_stream
        self._listening = True
        logger.info(f"Native streaming recognition started (language={self.language})")

    async def _discard_recognizer(self, loop: asyncio.AbstractEventLoop, recognizer) -> None:
        await loop.run_in_executor(None, recognizer.stop)
        if self.recognizer is recognizer:
            self.recognizer = None

    @staticmethod
    def _call_soon(loop: asyncio.AbstractEventLoop, callback, *args) -> None:
        try:
            loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            logger.debug("Event loop closed; dropping recognizer event")

    def _on_frame(self, frame: AudioFrame) -> None:
        if self._listening and self.recognizer is not None:
            self.recognizer.feed(float_to_pcm16(frame.samples))

    def _handle_result(self, token: CancellationToken, text: str, is_final: bool) -> None:
        if token.cancelled:
            return
        if is_final:
            self.interim_text = ""
            logger.debug(f"Final result: '{text}'")
            self._emit(self.transcript.append(text))
        elif text.strip():
            self.interim_text = text
            self._emit(self.transcript.render(interim=text))

    def _handle_error(self, token: CancellationToken, error: Exception) -> None:
        if token.cancelled:
            return
        if not isinstance(error, SpeechError):
            error = BackendError(str(error))
        self._schedule_failure(error)

    async def stop(self) -> None:
        if not self._listening:
            # A start still in progress checks the token and backs out
            self._token.cancel()
            return
        self._listening = False

        loop = asyncio.get_running_loop()
        token = self._token
        try:
            if self._mic_stream is not None:
                self._mic_stream.release()
            if self.recognizer is not None:
                # Final results posted while the stream drains are still accepted
                await loop.run_in_executor(None, self.recognizer.stop, self.settings.stop_timeout)
                await asyncio.sleep(0)
        finally:
            token.cancel()
            self._mic_stream = None
            self.recognizer = None
            self.interim_text = ""
            logger.info("Native streaming recognition stopped")
