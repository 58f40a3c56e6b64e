"""Explicit configuration injected into recognition adapters."""

from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Tuple

from .recognition import BackendSelection


DEFAULT_ENDPOINTS: Dict[str, str] = {
    "assemblyai": "http://localhost:3000/api/assemblyai/transcribe",
    "assemblyai_nano": "http://localhost:3000/api/assemblyai/transcribe",
    "whisper": "http://localhost:3000/api/whisper",
    "google": "http://localhost:3000/api/google/transcribe",
}


@dataclass(frozen=True)
class RecognitionSettings:
    """Everything the recognition core needs; resolved by the caller.

    Adapters never look at the process environment: credentials and
    endpoints arrive here.
    """
    backend: BackendSelection = BackendSelection.NATIVE_STREAMING
    language: str = "en-US"
    sample_rate: int = 16000
    buffer_size: int = 4096
    stop_timeout: float = 5.0  # Seconds stop() waits for in-flight uploads
    request_timeout: float = 30.0
    endpoints: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ENDPOINTS))
    token_url: Optional[str] = "http://localhost:3000/api/assemblyai/token"
    realtime_url: str = "wss://api.assemblyai.com/v2/realtime/ws"
    assemblyai_api_key: Optional[str] = None
    google_credentials_path: Optional[str] = None
    word_boost: Tuple[str, ...] = ()

    def endpoint_for(self, selection: BackendSelection) -> str:
        try:
            return self.endpoints[selection.value]
        except KeyError:
            raise ValueError(f"No transcription endpoint configured for '{selection.value}'")

    def with_language(self, language: str) -> "RecognitionSettings":
        return replace(self, language=language)

    def with_backend(self, backend: BackendSelection) -> "RecognitionSettings":
        return replace(self, backend=backend)

    @property
    def base_language(self) -> str:
        """'en-US' -> 'en'."""
        return self.language.split("-")[0]
