"""Recognition event publisher for pub/sub event publishing."""

import logging
from typing import Any, Dict

from pubsub import pub

from ..errors import SpeechError

logger = logging.getLogger(__name__)

TRANSCRIPT_TOPIC = "transcript.update"
DURATION_TOPIC = "recognition.duration"
ERROR_TOPIC = "recognition.error"
TRANSCRIPTION_START_TOPIC = "recognition.transcription_start"


class TranscriptPublisher:
    """Publishes orchestrator callbacks using pubsub.pub."""

    def __init__(self,
                 transcript_topic: str = TRANSCRIPT_TOPIC,
                 duration_topic: str = DURATION_TOPIC,
                 error_topic: str = ERROR_TOPIC,
                 transcription_start_topic: str = TRANSCRIPTION_START_TOPIC):
        """Initialize the publisher.

        Args:
            transcript_topic: Topic receiving `text=<full transcript>`
            duration_topic: Topic receiving `elapsed_ms=<int>`
            error_topic: Topic receiving `error=<SpeechError>`
            transcription_start_topic: Topic with no payload
        """
        self.transcript_topic = transcript_topic
        self.duration_topic = duration_topic
        self.error_topic = error_topic
        self.transcription_start_topic = transcription_start_topic
        logger.info(f"TranscriptPublisher initialized with topic: {transcript_topic}")

    def publish_transcript(self, text: str) -> None:
        pub.sendMessage(self.transcript_topic, text=text)
        logger.debug(f"Published transcript update ({len(text)} chars)")

    def publish_duration(self, elapsed_ms: int) -> None:
        pub.sendMessage(self.duration_topic, elapsed_ms=elapsed_ms)

    def publish_error(self, error: SpeechError) -> None:
        pub.sendMessage(self.error_topic, error=error)
        logger.debug(f"Published recognition error: {error}")

    def publish_transcription_start(self) -> None:
        pub.sendMessage(self.transcription_start_topic)

    def callbacks(self) -> Dict[str, Any]:
        """Keyword arguments wiring a RecognitionOrchestrator to this publisher."""
        return {
            "on_transcript_update": self.publish_transcript,
            "on_duration_update": self.publish_duration,
            "on_error": self.publish_error,
            "on_transcription_start": self.publish_transcription_start,
        }
