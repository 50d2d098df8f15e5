"""
Qianwen translation provider.

Calls the DashScope text-generation endpoint with ``httpx.AsyncClient``.
HTTP and payload failures are translated into ``ServiceError`` subclasses
so the recovery layer can classify them without knowing about httpx.
"""

import logging

import httpx

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


class QianwenProvider(BaseTranslationProvider):
    """DashScope / Qianwen backend (``qwen-turbo`` by default)."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        temperature: float = 0.3,
        top_p: float = 0.8,
        max_tokens: int = 300,
        context_max_tokens: int = 500,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        settings = get_settings()
        self._api_key = api_key or settings.dashscope_api_key
        self._model = model or settings.qianwen_model
        self._base_url = base_url or settings.qianwen_base_url
        self._temperature = temperature
        self._top_p = top_p
        self._max_tokens = max_tokens
        self._context_max_tokens = context_max_tokens
        self._client = client or httpx.AsyncClient(
            timeout=timeout or settings.request_timeout
        )

    def _build_payload(self, prompt: str, max_tokens: int) -> dict:
        return {
            "model": self._model,
            "input": {"messages": [{"role": "user", "content": prompt}]},
            "parameters": {
                "temperature": self._temperature,
                "max_tokens": max_tokens,
                "top_p": self._top_p,
            },
        }

    async def _post(self, payload: dict) -> dict:
        """POST to DashScope and return the decoded JSON body."""
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        try:
            resp = await self._client.post(self._base_url, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            logger.warning("Qianwen API timeout: %s", exc)
            raise NetworkError(f"Qianwen request timed out: {exc}") from exc
        except httpx.TransportError as exc:
            logger.warning("Qianwen API connection error: %s", exc)
            raise NetworkError(f"Failed to connect to Qianwen API: {exc}") from exc

        status = resp.status_code
        logger.debug("Qianwen API response status: %s", status)
        if status == 429:
            raise RateLimitedError()
        if status in (401, 403):
            raise AuthenticationError(f"Qianwen rejected credentials (HTTP {status})")
        if status in (502, 503, 504):
            raise ServiceUnavailableError(f"Qianwen unavailable (HTTP {status})")
        if status != 200:
            raise BackendError(f"HTTP {status}", upstream_status=status)

        try:
            return resp.json()
        except ValueError as exc:
            raise BackendError("Invalid response from API", upstream_status=status) from exc

    async def translate(
        self,
        text: str,
        source_language: str,
        target_language: str,
        context: str | None = None,
    ) -> str:
        if not self._api_key:
            raise MissingAPIKeyError("Qianwen")
        if not text or not text.strip():
            raise EmptyTextError()

        prompt = build_translation_prompt(text, source_language, target_language, context)
        max_tokens = self._context_max_tokens if context else self._max_tokens
        data = await self._post(self._build_payload(prompt, max_tokens))

        output = data.get("output") if isinstance(data, dict) else None
        translated = output.get("text") if isinstance(output, dict) else None
        if not isinstance(translated, str):
            raise BackendError("Invalid response from API")
        return strip_code_fences(translated)

    async def health_check(self) -> None:
        """Translate a short probe phrase; any failure propagates."""
        await self.translate("Hello", "en", "zh")

    async def aclose(self) -> None:
        await self._client.aclose()
