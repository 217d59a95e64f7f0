"""Chat backends for the mother and scenario agents."""

import logging
from typing import Any

from openai import AsyncOpenAI

from ..settings import (
    ANTHROPIC_API_KEY,
    ANTHROPIC_DEFAULT_MODEL,
    OPENROUTER_API_KEY,
    OPENROUTER_BASE_URL,
    OPENROUTER_DEFAULT_MODEL,
)
from .protocols import Message, MessageRole

logger = logging.getLogger(__name__)

CLIENT_RETRIES = 5
CLIENT_TIMEOUT_SECONDS = 120.0


def merge_consecutive_turns(messages: list[Message]) -> list[Message]:
    """Join adjacent same-role turns.

    The mother agent may append a tool-results turn and a scenario-results
    turn back to back; chat APIs expect alternating roles.
    """
    merged: list[Message] = []
    for msg in messages:
        if merged and merged[-1].role == msg.role and msg.role != MessageRole.SYSTEM:
            merged[-1] = Message(
                role=msg.role,
                content=f"{merged[-1].content}\n\n{msg.content}",
            )
        else:
            merged.append(msg)
    return merged


class ChatAdapter:
    """
    Shared lifecycle for SDK-backed providers.

    Subclasses open their SDK client in `_open_client` and send one request in
    `_send`. The client exists only inside `async with`.
    """

    backend = "chat"
    env_var = ""

    def __init__(self, api_key: str | None, model: str, max_tokens: int = 4096):
        if not api_key:
            raise ValueError(
                f"{self.backend} API key required. Set {self.env_var} in .env"
            )
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self._client: Any = None
        logger.info(f"{self.backend} backend ready (model: {self.model})")

    def _open_client(self) -> Any:
        raise NotImplementedError

    async def _send(self, turns: list[Message], temperature: float, max_tokens: int) -> str:
        raise NotImplementedError

    async def __aenter__(self):
        self._client = self._open_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.close()

    @property
    def client(self) -> Any:
        if self._client is None:
            raise RuntimeError(f"{self.backend} client is closed; use 'async with'")
        return self._client

    async def complete_messages(
        self,
        messages: list[Message],
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> str:
        turns = merge_consecutive_turns(messages)
        logger.debug(f"Sending {len(turns)} turns to {self.model}")
        return await self._send(turns, temperature, max_tokens or self.max_tokens)


class OpenRouterAdapter(ChatAdapter):
    """
    OpenRouter through its OpenAI-compatible endpoint.

    Usage:
        async with OpenRouterAdapter(model="anthropic/claude-3.5-sonnet") as llm:
            text = await llm.complete_messages(transcript)
    """

    backend = "OpenRouter"
    env_var = "OPENROUTER_API_KEY"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        max_tokens: int = 4096,
    ):
        super().__init__(api_key or OPENROUTER_API_KEY, model or OPENROUTER_DEFAULT_MODEL, max_tokens)
        self.base_url = base_url or OPENROUTER_BASE_URL

    def _open_client(self) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            max_retries=CLIENT_RETRIES,
            timeout=CLIENT_TIMEOUT_SECONDS,
        )

    async def _send(self, turns: list[Message], temperature: float, max_tokens: int) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[turn.as_chat() for turn in turns],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        if not response.choices:
            return ""
        logger.debug(f"OpenRouter usage: {response.usage}")
        return response.choices[0].message.content or ""


class AnthropicAdapter(ChatAdapter):
    """
    Claude models through the Anthropic SDK.

    The system turn travels in the `system` field rather than the message list.
    """

    backend = "Anthropic"
    env_var = "ANTHROPIC_API_KEY"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int = 4096,
    ):
        super().__init__(api_key or ANTHROPIC_API_KEY, model or ANTHROPIC_DEFAULT_MODEL, max_tokens)

    def _open_client(self):
        import anthropic

        return anthropic.AsyncAnthropic(
            api_key=self.api_key,
            max_retries=CLIENT_RETRIES,
            timeout=CLIENT_TIMEOUT_SECONDS,
        )

    async def _send(self, turns: list[Message], temperature: float, max_tokens: int) -> str:
        system = "\n\n".join(t.content for t in turns if t.role == MessageRole.SYSTEM)
        chat = [t.as_chat() for t in turns if t.role != MessageRole.SYSTEM]

        message = await self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            system=system,
            messages=chat,
            temperature=temperature,
        )
        logger.debug(
            f"Anthropic usage: input={message.usage.input_tokens}, "
            f"output={message.usage.output_tokens}"
        )
        return "".join(
            block.text for block in message.content if getattr(block, "type", "") == "text"
        )
