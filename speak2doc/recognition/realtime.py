"""Realtime streaming backend over an AssemblyAI websocket session."""

import asyncio
import json
import logging
from typing import Callable, Dict, Optional, Tuple

import aiohttp

from ..audio.wav import float_to_pcm16
from ..errors import BackendError, SpeechError
from ..models.audio import AudioFrame
from ..models.recognition import BackendSelection
from ..models.settings import RecognitionSettings
from .base import AbstractRecognitionAdapter, CancellationToken

logger = logging.getLogger(__name__)

PARTIAL_TRANSCRIPT = "PartialTranscript"
FINAL_TRANSCRIPT = "FinalTranscript"
SESSION_BEGINS = "SessionBegins"
SESSION_TERMINATED = "SessionTerminated"

SessionTranscriptCallback = Callable[[str, str], None]
SessionErrorCallback = Callable[[SpeechError], None]


class AssemblyAIRealtimeSession:
    """Token-authenticated duplex session: 16-bit PCM in, transcript events out.

    Callbacks run on the event loop that called `connect()`.
    """

    def __init__(self,
                 settings: RecognitionSettings,
                 on_transcript: SessionTranscriptCallback,
                 on_error: SessionErrorCallback,
                 handshake_timeout: float = 10.0):
        self.settings = settings
        self.on_transcript = on_transcript
        self.on_error = on_error
        self.handshake_timeout = handshake_timeout

        self.session_id: Optional[str] = None
        self._http: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._send_queue: Optional[asyncio.Queue] = None
        self._reader: Optional[asyncio.Task] = None
        self._sender: Optional[asyncio.Task] = None
        self._closing = False
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._ws.closed and not self._closing

    async def _authenticate(self) -> Tuple[Dict[str, str], Dict[str, str]]:
        """Return (headers, query params) for the websocket handshake."""
        params = {"sample_rate": str(self.settings.sample_rate)}
        if self.settings.word_boost:
            params["word_boost"] = json.dumps(list(self.settings.word_boost))

        if self.settings.token_url:
            try:
                params["token"] = await self._fetch_token()
                return {}, params
            except BackendError as e:
                logger.error(f"Error getting token from server: {e}")
                if not self.settings.assemblyai_api_key:
                    raise
                logger.info("Falling back to direct API key usage")

        if self.settings.assemblyai_api_key:
            return {"Authorization": self.settings.assemblyai_api_key}, params
        raise BackendError("AssemblyAI realtime requires a token endpoint or an API key")

    async def _fetch_token(self) -> str:
        timeout = aiohttp.ClientTimeout(total=self.settings.request_timeout)
        try:
            async with self._http.get(self.settings.token_url, timeout=timeout) as response:
                if response.status != 200:
                    raise BackendError(f"Failed to get token: {response.status} {response.reason}")
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise BackendError(f"Failed to get token: {e}") from e

        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise BackendError("No token received from server")
        return token

    async def connect(self) -> None:
        """Open the websocket and wait for the session to begin."""
        self._http = aiohttp.ClientSession()
        try:
            headers, params = await self._authenticate()
            self._ws = await self._http.ws_connect(self.settings.realtime_url,
                                                   params=params,
                                                   headers=headers,
                                                   heartbeat=30.0)
            message = await asyncio.wait_for(self._ws.receive_json(), timeout=self.handshake_timeout)
        except (aiohttp.ClientError, asyncio.TimeoutError, TypeError, ValueError) as e:
            await self._release()
            raise BackendError(f"Could not open AssemblyAI realtime session: {e}") from e
        except BackendError:
            await self._release()
            raise

        if message.get("error") or message.get("message_type") != SESSION_BEGINS:
            await self._release()
            raise BackendError(f"AssemblyAI realtime handshake failed: {message}")

        self.session_id = message.get("session_id")
        logger.info(f"AssemblyAI session opened with ID: {self.session_id}")

        self._send_queue = asyncio.Queue()
        self._sender = asyncio.ensure_future(self._send_loop())
        self._reader = asyncio.ensure_future(self._read_loop())

    def send_audio(self, pcm: bytes) -> None:
        if self.is_open and self._send_queue is not None:
            self._send_queue.put_nowait(pcm)

    async def _send_loop(self) -> None:
        while True:
            chunk = await self._send_queue.get()
            if chunk is None:
                return
            try:
                await self._ws.send_bytes(chunk)
            except (aiohttp.ClientError, ConnectionResetError, RuntimeError) as e:
                if not self._closing:
                    self.on_error(BackendError(f"Failed to send audio: {e}"))
                return

    async def _read_loop(self) -> None:
        async for msg in self._ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    data = json.loads(msg.data)
                except ValueError:
                    logger.warning(f"Ignoring malformed realtime message: {msg.data[:100]}")
                    continue
                self._handle_message(data)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.error(f"AssemblyAI websocket error: {self._ws.exception()}")
                break

        logger.info(f"AssemblyAI session closed: {self._ws.close_code}")
        if not self._closing:
            self.on_error(BackendError(
                f"AssemblyAI session closed unexpectedly (code={self._ws.close_code})"))

    def _handle_message(self, data: dict) -> None:
        if data.get("error"):
            self.on_error(BackendError(f"AssemblyAI error: {data['error']}"))
            return
        message_type = data.get("message_type")
        if message_type in (PARTIAL_TRANSCRIPT, FINAL_TRANSCRIPT):
            if data.get("text"):
                self.on_transcript(message_type, data["text"])
        elif message_type == SESSION_TERMINATED:
            logger.debug("AssemblyAI session terminated")

    async def close(self) -> None:
        """Terminate the remote session whatever state it is in."""
        if self._closed:
            return
        self._closing = True
        try:
            if self._sender is not None and not self._sender.done():
                self._send_queue.put_nowait(None)
                await asyncio.wait_for(self._sender, timeout=self.settings.stop_timeout)
            if self._ws is not None and not self._ws.closed:
                await self._ws.send_json({"terminate_session": True})
                await self._ws.close()
        except (aiohttp.ClientError, ConnectionResetError, RuntimeError, asyncio.TimeoutError) as e:
            logger.warning(f"Error closing AssemblyAI session: {e}")
        finally:
            await self._release()

    async def _release(self) -> None:
        self._closed = True
        for task in (self._sender, self._reader):
            if task is not None and not task.done():
                task.cancel()
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        if self._http is not None:
            await self._http.close()
            self._http = None


class RealtimeStreamingAdapter(AbstractRecognitionAdapter):
    """Forwards microphone audio continuously and appends final transcripts."""

    selection = BackendSelection.REALTIME_ASSEMBLYAI

    def __init__(self, settings: RecognitionSettings, session_factory=None, **kwargs):
        super().__init__(settings, **kwargs)
        self.session_factory = session_factory or AssemblyAIRealtimeSession
        self.session = None
        self._mic_stream = None

    async def start(self) -> None:
        if self._listening:
            return

        self._token = token = CancellationToken()
        self.session = self.session_factory(
            self.settings,
            on_transcript=lambda message_type, text: self._handle_transcript(token, message_type, text),
            on_error=lambda error: self._handle_error(token, error),
        )
        session = self.session
        await session.connect()
        if token.cancelled:
            logger.info("AssemblyAI realtime start cancelled during handshake")
            await session.close()
            if self.session is session:
                self.session = None
            return

        try:
            mic_stream = await self.microphone.acquire(self._on_frame)
        except Exception:
            await session.close()
            if self.session is session:
                self.session = None
            raise
        if token.cancelled:
            logger.info("AssemblyAI realtime start cancelled while acquiring the microphone")
            mic_stream.release()
            await session.close()
            if self.session is session:
                self.session = None
            return

        self._mic_stream = mic_stream
        self._listening = True
        logger.info("AssemblyAI realtime adapter started")

    def _on_frame(self, frame: AudioFrame) -> None:
        if self._listening and self.session is not None:
            self.session.send_audio(float_to_pcm16(frame.samples))

    def _handle_transcript(self, token: CancellationToken, message_type: str, text: str) -> None:
        if token.cancelled or message_type != FINAL_TRANSCRIPT:
            return
        logger.debug(f"Final transcript: '{text}'")
        self._emit(self.transcript.append(text))

    def _handle_error(self, token: CancellationToken, error: SpeechError) -> None:
        if token.cancelled:
            return
        self._schedule_failure(error)

    async def stop(self) -> None:
        if not self._listening:
            # A start still in progress checks the token and backs out
            self._token.cancel()
            return
        self._listening = False

        token = self._token
        try:
            if self._mic_stream is not None:
                self._mic_stream.release()
        finally:
            try:
                if self.session is not None:
                    await self.session.close()
            finally:
                token.cancel()
                self.session = None
                self._mic_stream = None
                logger.info("AssemblyAI realtime adapter stopped")
