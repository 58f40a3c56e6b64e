"""Google Speech-to-Text streaming recognizer used by the native backend."""

import logging
import queue
import threading
from pathlib import Path
from typing import Callable, Iterator, Optional

from google.api_core import exceptions as gax_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import speech
from google.oauth2 import service_account

from ..errors import BackendError, UnsupportedError

logger = logging.getLogger(__name__)

ResultCallback = Callable[[str, bool], None]
ErrorCallback = Callable[[Exception], None]


class GoogleStreamingRecognizer:
    """Continuous recognition with interim results over a gRPC stream.

    `feed()` may be called from any thread; responses are read on a
    dedicated worker thread and reported through the callbacks given to
    `start()`, also on that thread.
    """

    def __init__(self,
                 credentials_path: Optional[str],
                 sample_rate: int = 16000,
                 language: str = "en-US",
                 enable_automatic_punctuation: bool = True,
                 interim_results: bool = True):
        """Initialize the recognizer.

        Args:
            credentials_path: Path to a Google Cloud service account JSON file
            sample_rate: Sample rate of the 16-bit PCM fed in
            language: BCP-47 language code (e.g. 'en-US')
            enable_automatic_punctuation: Enable automatic punctuation
            interim_results: Report non-final hypotheses
        """
        if not credentials_path:
            raise UnsupportedError("Native streaming recognition requires Google credentials")
        if not Path(credentials_path).exists():
            raise UnsupportedError(f"Google credentials file not found: {credentials_path}")

        self.credentials_path = credentials_path
        self.language = language
        self.service_name = "Google Streaming Speech"
        self.streaming_config = speech.StreamingRecognitionConfig(
            config=speech.RecognitionConfig(
                encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
                sample_rate_hertz=sample_rate,
                language_code=language,
                enable_automatic_punctuation=enable_automatic_punctuation,
            ),
            interim_results=interim_results,
        )
        self.client: Optional[speech.SpeechClient] = None
        self._audio_queue: "queue.Queue[Optional[bytes]]" = queue.Queue()
        self._worker: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    def start(self, on_result: ResultCallback, on_error: ErrorCallback) -> None:
        """Connect and start the response worker."""
        try:
            credentials = service_account.Credentials.from_service_account_file(self.credentials_path)
            self.client = speech.SpeechClient(credentials=credentials)
        except (ValueError, auth_exceptions.GoogleAuthError) as e:
            raise BackendError(f"Invalid Google credentials: {e}") from e
        logger.info(f"Using Google Cloud project: {credentials.project_id}")

        self._stop_event.clear()
        self._worker = threading.Thread(target=self._run,
                                        args=(on_result, on_error),
                                        name="GoogleStreamingThread",
                                        daemon=True)
        self._worker.start()

    def feed(self, pcm: bytes) -> None:
        if not self._stop_event.is_set():
            self._audio_queue.put(pcm)

    def _requests(self) -> Iterator[speech.StreamingRecognizeRequest]:
        while True:
            chunk = self._audio_queue.get()
            if chunk is None:
                return
            yield speech.StreamingRecognizeRequest(audio_content=chunk)

    def _run(self, on_result: ResultCallback, on_error: ErrorCallback) -> None:
        try:
            responses = self.client.streaming_recognize(config=self.streaming_config,
                                                        requests=self._requests())
            for response in responses:
                for result in response.results:
                    if not result.alternatives:
                        continue
                    on_result(result.alternatives[0].transcript, result.is_final)
        except gax_exceptions.GoogleAPICallError as e:
            if not self._stop_event.is_set():
                logger.error(f"Google streaming recognition error: {e}")
                on_error(BackendError(f"Google streaming recognition failed: {e}"))
        except Exception as e:
            if not self._stop_event.is_set():
                logger.error(f"Google streaming worker failed: {e}", exc_info=True)
                on_error(BackendError(f"Google streaming recognition failed: {e}"))
        finally:
            logger.debug("Google streaming worker exiting")

    def stop(self, timeout: float = 5.0) -> None:
        """Close the request stream and wait for the final results."""
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        self._audio_queue.put(None)
        if self._worker and self._worker.is_alive():
            self._worker.join(timeout=timeout)
            if self._worker.is_alive():
                logger.warning("Google streaming worker did not stop cleanly")
        self._worker = None
