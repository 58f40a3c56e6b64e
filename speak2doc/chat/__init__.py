"""Chat-completion proxy client."""

from .client import ChatProxyClient, DEFAULT_CHAT_URL, DEFAULT_SYSTEM_PROMPT

__all__ = ["ChatProxyClient", "DEFAULT_CHAT_URL", "DEFAULT_SYSTEM_PROMPT"]
