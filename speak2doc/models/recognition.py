"""Backend selection, start outcome and duration models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class BackendSelection(Enum):
    """The six speech-to-text backends the orchestrator can drive."""
    NATIVE_STREAMING = "native"
    ASSEMBLYAI = "assemblyai"
    ASSEMBLYAI_NANO = "assemblyai_nano"
    WHISPER = "whisper"
    GOOGLE = "google"
    REALTIME_ASSEMBLYAI = "realtime"

    @classmethod
    def from_name(cls, name: str) -> "BackendSelection":
        """Resolve a selection from its value or member name (case-insensitive)."""
        key = name.strip().lower()
        for member in cls:
            if key in (member.value, member.name.lower()):
                return member
        valid = ", ".join(m.value for m in cls)
        raise ValueError(f"Unknown backend '{name}' (expected one of: {valid})")

    @property
    def is_buffered(self) -> bool:
        return self in BUFFERED_SELECTIONS


BUFFERED_SELECTIONS = frozenset({
    BackendSelection.ASSEMBLYAI,
    BackendSelection.ASSEMBLYAI_NANO,
    BackendSelection.WHISPER,
    BackendSelection.GOOGLE,
})


@dataclass
class StartResult:
    """Outcome of Orchestrator.start().

    `fell_back` is True when the requested backend failed and the native
    streaming backend was started in its place. `cancelled` is True when
    stop() or a backend change arrived before the start completed; nothing
    is listening in that case.
    """
    active: BackendSelection
    requested: BackendSelection
    fell_back: bool = False
    cancelled: bool = False
    error: Optional[BaseException] = None


@dataclass
class DurationRecord:
    """Wall-clock duration of the current capture session."""
    start_timestamp: Optional[float] = None
    elapsed_ms: int = 0
