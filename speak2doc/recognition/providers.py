"""Provider drivers for the buffered batch adapter."""

from typing import Any, Dict, Optional

from ..models.recognition import BackendSelection
from .buffered import BatchProviderDriver


class AssemblyAIDriver(BatchProviderDriver):
    """AssemblyAI pre-recorded transcription with the default speech model."""

    selection = BackendSelection.ASSEMBLYAI
    service_name = "AssemblyAI"
    speech_model = "best"

    noise_threshold = 0.01
    silence_holdoff_ms = 1500
    max_buffer_frames = 100

    def format_language(self, language: str) -> Optional[str]:
        return language.split("-")[0]

    def extra_fields(self) -> Dict[str, str]:
        return {"speech_model": self.speech_model}

    def parse_response(self, payload: Dict[str, Any]) -> str:
        return (payload.get("text") or "").strip()


class AssemblyAINanoDriver(AssemblyAIDriver):
    """AssemblyAI's low-cost Nano model."""

    selection = BackendSelection.ASSEMBLYAI_NANO
    service_name = "AssemblyAI Nano"
    speech_model = "nano"


class WhisperDriver(BatchProviderDriver):
    """OpenAI Whisper; short utterances keep latency low."""

    selection = BackendSelection.WHISPER
    service_name = "Whisper"

    noise_threshold = 0.005
    silence_holdoff_ms = 1000
    max_buffer_frames = 50
    max_utterance_ms = 3000

    def format_language(self, language: str) -> Optional[str]:
        # 'en-US' -> 'en'
        return language.split("-")[0]

    def parse_response(self, payload: Dict[str, Any]) -> str:
        return (payload.get("text") or "").strip()


class GoogleSpeechDriver(BatchProviderDriver):
    """Google Cloud Speech-to-Text synchronous recognition.

    A longer hold-off gives Google more context per request.
    """

    selection = BackendSelection.GOOGLE
    service_name = "Google Speech-to-Text"

    noise_threshold = 0.01
    silence_holdoff_ms = 2000
    max_buffer_frames = 100
    max_utterance_ms = 10000

    def parse_response(self, payload: Dict[str, Any]) -> str:
        if payload.get("error"):
            # The endpoint reports Google failures with a placeholder text
            return ""
        return (payload.get("text") or "").strip()


DRIVERS = {
    BackendSelection.ASSEMBLYAI: AssemblyAIDriver,
    BackendSelection.ASSEMBLYAI_NANO: AssemblyAINanoDriver,
    BackendSelection.WHISPER: WhisperDriver,
    BackendSelection.GOOGLE: GoogleSpeechDriver,
}


def create_driver(selection: BackendSelection, settings) -> BatchProviderDriver:
    try:
        driver_class = DRIVERS[selection]
    except KeyError:
        raise ValueError(f"'{selection.value}' is not a buffered batch backend")
    return driver_class(settings)
