"""
Claude translation provider implementation.

Uses the Anthropic Python SDK (``anthropic.AsyncAnthropic``). Includes a
concurrency semaphore; SDK exceptions are translated into ``ServiceError``
subclasses so the recovery layer can classify them.
"""

import asyncio
import logging

import anthropic
from anthropic import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncAnthropic,
    RateLimitError,
)

from src.core.config import get_settings
from src.core.exceptions import (
    AuthenticationError,
    BackendError,
    EmptyTextError,
    MissingAPIKeyError,
    NetworkError,
    RateLimitedError,
    ServiceUnavailableError,
)
from src.core.utils import strip_code_fences
from src.services.translation.base import BaseTranslationProvider, build_translation_prompt

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a professional translator. "
    "Output ONLY the translation, no quotes, notes or markdown fences."
)


class ClaudeTranslationProvider(BaseTranslationProvider):
    """Claude API translation backend with a rate-limit semaphore."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.3,
        max_concurrent: int = 5,
    ) -> None:
        settings = get_settings()
        self._api_key = api_key or settings.claude_api_key
        self._model = model or settings.claude_model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._client = AsyncAnthropic(api_key=self._api_key)

    async def _call_api(self, user_prompt: str) -> str:
        """Send a request to Claude, respecting the concurrency semaphore."""
        async with self._semaphore:
            try:
                response = await self._client.messages.create(
                    model=self._model,
                    max_tokens=self._max_tokens,
                    temperature=self._temperature,
                    system=SYSTEM_PROMPT,
                    messages=[{"role": "user", "content": user_prompt}],
                )
            except APITimeoutError as exc:
                logger.warning("Claude API timeout: %s", exc)
                raise NetworkError(f"Claude API request timed out: {exc}") from exc
            except APIConnectionError as exc:
                logger.warning("Claude API connection error: %s", exc)
                raise NetworkError(f"Failed to connect to Claude API: {exc}") from exc
            except RateLimitError as exc:
                logger.warning("Claude API rate limit hit: %s", exc)
                raise RateLimitedError(f"Claude API rate limit exceeded: {exc}") from exc
            except (anthropic.AuthenticationError, anthropic.PermissionDeniedError) as exc:
                raise AuthenticationError(f"Claude rejected credentials: {exc}") from exc
            except APIStatusError as exc:
                if exc.status_code >= 500:
                    raise ServiceUnavailableError(f"Claude unavailable: {exc}") from exc
                raise BackendError(str(exc), upstream_status=exc.status_code) from exc

        try:
            return response.content[0].text
        except (AttributeError, IndexError) as exc:
            raise BackendError("Invalid response from API") from exc

    async def translate(
        self,
        text: str,
        source_language: str,
        target_language: str,
        context: str | None = None,
    ) -> str:
        if not self._api_key:
            raise MissingAPIKeyError("Claude")
        if not text or not text.strip():
            raise EmptyTextError()
        prompt = build_translation_prompt(text, source_language, target_language, context)
        return strip_code_fences(await self._call_api(prompt))

    async def health_check(self) -> None:
        if not self._api_key:
            raise MissingAPIKeyError("Claude")
        await self._call_api("Reply with OK.")

    async def aclose(self) -> None:
        await self._client.close()
