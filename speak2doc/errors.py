"""Error taxonomy for speech recognition backends and the orchestrator."""

from typing import Optional


class SpeechError(Exception):
    """Base class for all speak2doc recognition errors."""


class MicrophonePermissionError(SpeechError, PermissionError):
    """Microphone access was denied or the input device could not be opened."""


class UnsupportedError(SpeechError):
    """A capability required by the backend is missing from this runtime."""


class BackendError(SpeechError):
    """Provider-side failure: authentication, connection or malformed response."""


class TranscriptionRequestError(SpeechError):
    """A single utterance could not be uploaded or decoded.

    Recovered locally by the buffered adapters; the session keeps listening.
    """

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class StartError(SpeechError):
    """Starting recognition failed and the native fallback failed as well."""

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        super().__init__(message)
        self.original_error = original_error
