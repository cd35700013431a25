"""
Chat completion client.

Uses the AsyncOpenAI client, so any OpenAI-compatible endpoint (OpenAI,
vLLM, LM Studio, ...) works by setting ``base_url``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence

from openai import AsyncOpenAI, OpenAIError

from vibecord.configuration.app_configuration import AIConfig
from vibecord.util.logger import get_logger

logger = get_logger("llm_client")

DEFAULT_MAX_TOKENS = 1024
DEFAULT_STOP = ("\n\n", "Human:", "User:")
# Local OpenAI-compatible servers ignore the key, but the client refuses to start without one.
PLACEHOLDER_API_KEY = "not-set"


class CompletionError(Exception):
    """The completion endpoint failed or returned nothing usable."""


@dataclass(frozen=True)
class CompletionRequest:
    """Everything needed for one chat completion call."""
    messages: Sequence[Dict[str, str]]
    temperature: float = 1.0
    max_tokens: int = DEFAULT_MAX_TOKENS
    top_p: float = 0.9
    frequency_penalty: float = 0.5
    stop: Sequence[str] = field(default_factory=lambda: DEFAULT_STOP)


class CompletionClient(Protocol):
    async def complete(self, request: CompletionRequest) -> str:
        ...


class OpenAICompletionClient:
    """:class:`CompletionClient` on top of ``AsyncOpenAI.chat.completions``."""

    def __init__(self, settings: AIConfig, client: Optional[AsyncOpenAI] = None) -> None:
        self.settings = settings
        self._client = client or self._make_client(settings)
        logger.info("[LLM CLIENT] Initialized with base_url=%s, model=%s", settings.base_url, settings.model)

    @staticmethod
    def _make_client(settings: AIConfig) -> AsyncOpenAI:
        if not settings.api_key:
            logger.warning("[LLM CLIENT] No OpenAI API key configured, requests to hosted endpoints will fail")
        return AsyncOpenAI(api_key=settings.api_key or PLACEHOLDER_API_KEY, base_url=settings.base_url or None)

    async def apply_settings(self, settings: AIConfig) -> None:
        """Switch model or endpoint after a configuration reload, closing the replaced client."""
        if settings == self.settings:
            return
        if (settings.api_key, settings.base_url) != (self.settings.api_key, self.settings.base_url):
            old, self._client = self._client, self._make_client(settings)
            try:
                await old.close()
            except Exception as exc:
                logger.warning("[LLM CLIENT] Failed to close previous client: %s", exc)
        self.settings = settings
        logger.info("[LLM CLIENT] Now using base_url=%s, model=%s", settings.base_url, settings.model)

    async def complete(self, request: CompletionRequest) -> str:
        """
        Run one chat completion.

        Raises:
            CompletionError: On API errors or an empty completion.
        """
        messages: List[Dict[str, str]] = [dict(message) for message in request.messages]
        try:
            response = await self._client.chat.completions.create(
                model=self.settings.model,
                messages=messages,
                temperature=request.temperature,
                max_tokens=request.max_tokens,
                top_p=request.top_p,
                frequency_penalty=request.frequency_penalty,
                stop=list(request.stop),
            )
        except OpenAIError as exc:
            raise CompletionError(f"chat completion failed: {exc}") from exc

        if not response.choices:
            raise CompletionError("chat completion returned no choices")
        content = (response.choices[0].message.content or "").strip()
        if not content:
            raise CompletionError("chat completion returned empty content")
        return content

    async def close(self) -> None:
        await self._client.close()
