"""Chat-completion proxy client for sending transcripts and streaming replies."""

import asyncio
import json
import logging
from typing import Callable, Optional

import aiohttp

from ..errors import BackendError

logger = logging.getLogger(__name__)

DEFAULT_CHAT_URL = "http://localhost:3000/api/openai"

DEFAULT_SYSTEM_PROMPT = (
    "You are a professional and empathetic doctor conducting an online consultation. "
    "The patient will describe their symptoms, and you should respond with a thoughtful "
    "and detailed analysis. Ask relevant follow-up questions to clarify the condition. "
    "Provide possible explanations, suggest next steps, and recommend whether they should "
    "seek immediate medical attention or follow home remedies. Do not provide a final "
    "diagnosis but instead offer guidance based on best medical practices. Keep the tone "
    "reassuring and professional."
)

SSE_DATA_PREFIX = "data: "
SSE_DONE = "[DONE]"


class ChatProxyClient:
    """Sends text to a chat-completion proxy and streams the reply."""

    def __init__(self,
                 url: str = DEFAULT_CHAT_URL,
                 on_message_update: Optional[Callable[[str], None]] = None,
                 system_prompt: str = DEFAULT_SYSTEM_PROMPT,
                 request_timeout: float = 60.0):
        """Initialize the chat client.

        Args:
            url: Proxy endpoint accepting `{text, prompt, stream}`
            on_message_update: Called with the full reply so far after each chunk
            system_prompt: Prompt used when send_message() is given none
            request_timeout: Seconds to wait between streamed chunks
        """
        self.url = url
        self.on_message_update = on_message_update
        self.system_prompt = system_prompt
        self.request_timeout = request_timeout
        self.last_response = ""
        self._request: Optional[asyncio.Task] = None
        self._aborted: Optional[asyncio.Task] = None

        logger.info(f"ChatProxyClient initialized with url: {url}")

    def is_processing(self) -> bool:
        return self._request is not None and not self._request.done()

    async def send_message(self, text: str, system_prompt: Optional[str] = None) -> str:
        """Send text and stream the reply.

        A request already in flight is aborted first. Returns the reply
        received so far if this request is itself aborted.

        Raises:
            ValueError: If text is empty
            BackendError: If the proxy rejects the request or the connection fails
        """
        if not text.strip():
            raise ValueError("Message cannot be empty")

        if self.is_processing():
            self.abort()

        self.last_response = ""
        request = asyncio.ensure_future(self._stream(text, system_prompt or self.system_prompt))
        self._request = request
        try:
            return await request
        except asyncio.CancelledError:
            if self._aborted is not request:
                raise
            logger.info("Chat request was aborted")
            return self.last_response
        finally:
            if self._request is request:
                self._request = None

    async def _stream(self, text: str, prompt: str) -> str:
        payload = {"text": text, "prompt": prompt, "stream": True}
        timeout = aiohttp.ClientTimeout(total=None, sock_read=self.request_timeout)
        full_response = ""
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.url, json=payload) as response:
                    if response.status < 200 or response.status >= 300:
                        error_text = await response.text()
                        raise BackendError(f"Failed to send message: {response.status} - {error_text}")

                    async for raw_line in response.content:
                        line = raw_line.decode("utf-8").strip()
                        if not line.startswith(SSE_DATA_PREFIX):
                            continue
                        data = line[len(SSE_DATA_PREFIX):]
                        if data == SSE_DONE:
                            break
                        try:
                            parsed = json.loads(data)
                        except ValueError as e:
                            logger.error(f"Error parsing SSE data: {e}")
                            continue
                        content = parsed.get("content") if isinstance(parsed, dict) else None
                        if content:
                            full_response += content
                            self.last_response = full_response
                            self._notify(full_response)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise BackendError(f"Chat proxy request failed: {e}") from e

        logger.debug(f"Chat reply complete ({len(full_response)} chars)")
        return full_response

    def _notify(self, message: str) -> None:
        if self.on_message_update:
            try:
                self.on_message_update(message)
            except Exception as e:
                logger.error(f"Error in message update callback: {e}", exc_info=True)

    def abort(self) -> None:
        """Cancel the request in flight, if any."""
        if self.is_processing():
            self._aborted = self._request
            self._request.cancel()
        self._request = None

    async def complete(self, text: str, prompt: Optional[str] = None) -> str:
        """Non-streaming request; a '....' placeholder in the prompt is replaced by text."""
        if not text.strip():
            raise ValueError("Message cannot be empty")

        payload = {"text": text, "prompt": prompt, "stream": False}
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.url, json=payload) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        raise BackendError(f"Chat proxy error: {response.status} - {error_text}")
                    result = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise BackendError(f"Chat proxy request failed: {e}") from e

        if not isinstance(result, dict) or "result" not in result:
            raise BackendError(f"Unexpected chat proxy response: {result!r}")
        return (result["result"] or "").strip()
