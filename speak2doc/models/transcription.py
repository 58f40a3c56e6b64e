"""Transcription-related data models."""

from typing import List


class TranscriptAccumulator:
    """Running transcript for one capture session.

    Finalized utterances are joined with single spaces; interim text is only
    appended to the rendered value and never stored.
    """

    def __init__(self) -> None:
        self._segments: List[str] = []

    def append(self, segment: str) -> str:
        """Add a finalized segment and return the rendered transcript."""
        segment = segment.strip()
        if segment:
            self._segments.append(segment)
        return self.text

    def render(self, interim: str = "") -> str:
        parts = list(self._segments)
        if interim.strip():
            parts.append(interim.strip())
        return " ".join(parts).strip()

    @property
    def text(self) -> str:
        return self.render()

    @property
    def segments(self) -> List[str]:
        return list(self._segments)

    def reset(self) -> None:
        self._segments.clear()

    def __len__(self) -> int:
        return len(self._segments)
