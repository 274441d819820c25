from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class ChatClient(Protocol):
    def chat(
        self,
        messages: list[dict[str, Any]],
        *,
        temperature: float,
        max_tokens: int,
    ) -> str: ...


class CompletionService(Protocol):
    async def complete(
        self,
        messages: list[dict[str, Any]],
        *,
        temperature: float,
        max_tokens: int,
    ) -> str: ...


class AsyncCompletionService:
    """Runs a blocking provider client in a worker thread."""

    def __init__(self, client: ChatClient) -> None:
        self._client = client

    async def complete(
        self,
        messages: list[dict[str, Any]],
        *,
        temperature: float,
        max_tokens: int,
    ) -> str:
        logger.debug(
            "completion request client=%s messages=%s temperature=%s max_tokens=%s",
            type(self._client).__name__,
            len(messages),
            temperature,
            max_tokens,
        )
        return await asyncio.to_thread(
            self._client.chat,
            messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
