"""Main application entry point for speak2doc."""

import sys
import asyncio
import argparse
import logging
from pathlib import Path
from typing import Optional

from pubsub import pub
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from .chat import ChatProxyClient, DEFAULT_CHAT_URL, DEFAULT_SYSTEM_PROMPT
from .config import Speak2DocConfig
from .errors import SpeechError, StartError
from .models.recognition import BackendSelection
from .recognition import RecognitionOrchestrator, TranscriptPublisher
from .recognition.publisher import (DURATION_TOPIC, ERROR_TOPIC, TRANSCRIPT_TOPIC,
                                    TRANSCRIPTION_START_TOPIC)

logger = logging.getLogger(__name__)


class Server:

    def __init__(self, config_path: str, log_level: Optional[str] = None):
        # Load configuration
        self.config = Speak2DocConfig(config_path)
        # Command line level overrides the config
        setup_logging(self.config, log_level or self.config.get('logging.level', 'INFO'))
        self.console = Console()

        self.transcript = ""
        self.elapsed_ms = 0
        self.transcribing = 0
        self.last_error: Optional[SpeechError] = None
        self.reply = ""

    def init(self, backend: Optional[str] = None, language: Optional[str] = None):
        logger.info("Initializing services...")

        settings = self.config.recognition_settings()
        if backend:
            settings = settings.with_backend(BackendSelection.from_name(backend))
        if language:
            settings = settings.with_language(language)
        self.settings = settings
        logger.info(f"Recognition settings: backend={settings.backend.value}, language={settings.language}")

        self.publisher = TranscriptPublisher()
        pub.subscribe(self._on_transcript, TRANSCRIPT_TOPIC)
        pub.subscribe(self._on_duration, DURATION_TOPIC)
        pub.subscribe(self._on_error, ERROR_TOPIC)
        pub.subscribe(self._on_transcription_start, TRANSCRIPTION_START_TOPIC)

        self.orchestrator = RecognitionOrchestrator(self.settings, **self.publisher.callbacks())

    def _on_transcript(self, text: str) -> None:
        self.transcript = text

    def _on_duration(self, elapsed_ms: int) -> None:
        self.elapsed_ms = elapsed_ms

    def _on_error(self, error: SpeechError) -> None:
        self.last_error = error

    def _on_transcription_start(self) -> None:
        self.transcribing += 1

    def _render(self) -> Panel:
        api = self.orchestrator.get_api().value
        status = "🔴 LISTENING" if self.orchestrator.is_listening() else "⏹️  STOPPED"
        header = Text(f"{status}  backend={api}  language={self.settings.language}  "
                      f"elapsed={self.elapsed_ms / 1000:.1f}s", style="bold")
        body = Text(self.transcript or "Waiting for speech...",
                    style="white" if self.transcript else "dim")
        parts = [header, Text(""), body]
        if self.last_error:
            parts.append(Text(f"\n❌ {self.last_error}", style="red"))
        return Panel(Group(*parts), title="🎙️  speak2doc", border_style="blue")

    async def run(self, duration: int) -> str:
        """Capture for `duration` seconds (0 = until interrupted) and return the transcript."""
        loop = asyncio.get_running_loop()
        try:
            result = await self.orchestrator.start()
            if result.fell_back:
                self.console.print(f"⚠️  {result.requested.value} unavailable ({result.error}); "
                                   f"using native streaming", style="yellow")

            deadline = loop.time() + duration if duration else None
            with Live(self._render(), console=self.console, refresh_per_second=4) as live:
                while self.orchestrator.is_listening():
                    if deadline is not None and loop.time() >= deadline:
                        break
                    await asyncio.sleep(0.25)
                    live.update(self._render())
                await self.orchestrator.stop()
                live.update(self._render())
        finally:
            await self.cleanup()

        logger.info(f"Session finished after {self.orchestrator.get_duration()}ms "
                    f"({self.transcribing} transcription requests)")
        return self.orchestrator.get_transcript()

    async def send_to_chat(self, transcript: str) -> str:
        """Stream the chat proxy's reply to the transcript."""
        client = ChatProxyClient(url=self.config.get_chat_url() or DEFAULT_CHAT_URL,
                                 system_prompt=self.config.get_chat_prompt() or DEFAULT_SYSTEM_PROMPT)
        with Live(Panel("Analyzing...", title="🩺 Assessment"), console=self.console,
                  refresh_per_second=8) as live:
            def on_update(message: str) -> None:
                self.reply = message
                live.update(Panel(message, title="🩺 Assessment", border_style="green"))

            client.on_message_update = on_update
            return await client.send_message(transcript)

    async def cleanup(self):
        await self.orchestrator.close()


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/speak2doc.log')
    console_output = config.get('logging.console_output', True)

    # Create logs directory if it doesn't exist
    Path(log_file_path).parent.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    ))
    handlers.append(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("speak2doc application starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


async def run_session(server: Server, duration: int, chat: bool) -> None:
    transcript = await server.run(duration)
    server.console.print(Panel(transcript or "(no speech recognized)", title="📝 Transcript"))
    if chat and transcript:
        await server.send_to_chat(transcript)


def main() -> None:
    """Main entry point for speak2doc."""
    parser = argparse.ArgumentParser(
        description="speak2doc - Speech-to-text for medical consultations"
    )

    parser.add_argument(
        "--config",
        type=str,
        default="speak2doc.yaml",
        help="Path to configuration YAML file (default: speak2doc.yaml)"
    )

    parser.add_argument(
        "--backend",
        type=str,
        choices=[selection.value for selection in BackendSelection],
        help="Speech-to-text backend (overrides config)"
    )

    parser.add_argument(
        "--language",
        type=str,
        help="Recognition language, e.g. en-US (overrides config)"
    )

    parser.add_argument(
        "--duration",
        type=int,
        default=10,
        help="Seconds to listen; 0 listens until Ctrl-C (default: 10)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (overrides config)"
    )

    parser.add_argument(
        "--chat",
        action="store_true",
        help="Send the transcript to the chat proxy when listening ends"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="speak2doc v0.1.0"
    )

    args = parser.parse_args()

    try:
        server = Server(args.config, args.log_level)
        server.init(args.backend, args.language)
        asyncio.run(run_session(server, args.duration, args.chat))
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
    except (StartError, SpeechError, FileNotFoundError, ValueError) as e:
        print(f"❌ Error: {e}")
        logging.error(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
