"""
Ollama translation provider implementation.

Uses the Ollama Python SDK (``ollama.AsyncClient``) to translate with a
locally running model. Connection problems surface as ``NetworkError``.
"""

import logging

from ollama import AsyncClient, ResponseError

from src.core.config import get_settings
from src.core.exceptions import (
    BackendError,
    EmptyTextError,
    NetworkError,
    ServiceUnavailableError,
)
from src.core.utils import strip_code_fences
from src.services.translation.base import BaseTranslationProvider, build_translation_prompt

logger = logging.getLogger(__name__)


class OllamaTranslationProvider(BaseTranslationProvider):
    """Ollama local translation backend.

    Connects to a locally running Ollama server via its REST API.
    """

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        temperature: float = 0.3,
    ) -> None:
        """Initialize the Ollama provider.

        Args:
            base_url: Ollama server URL (falls back to settings if not provided).
            model: Model name to use (e.g. "llama3.2").
            temperature: Sampling temperature (0.0 to 1.0).
        """
        settings = get_settings()
        self._base_url = base_url or settings.ollama_base_url
        self._model = model or settings.ollama_model
        self._temperature = temperature
        self._client = AsyncClient(host=self._base_url)

    async def translate(
        self,
        text: str,
        source_language: str,
        target_language: str,
        context: str | None = None,
    ) -> str:
        if not text or not text.strip():
            raise EmptyTextError()
        prompt = build_translation_prompt(text, source_language, target_language, context)
        try:
            response = await self._client.chat(
                model=self._model,
                messages=[{"role": "user", "content": prompt}],
                options={"temperature": self._temperature},
            )
        except ConnectionError as exc:
            logger.warning("Ollama connection error (%s): %s", self._base_url, exc)
            raise NetworkError(f"Failed to connect to Ollama at {self._base_url}: {exc}") from exc
        except TimeoutError as exc:
            logger.warning("Ollama timeout (%s): %s", self._base_url, exc)
            raise NetworkError(f"Ollama request timed out ({self._base_url}): {exc}") from exc
        except ResponseError as exc:
            logger.error("Ollama response error: %s", exc)
            if exc.status_code >= 500:
                raise ServiceUnavailableError(f"Ollama error: {exc}") from exc
            raise BackendError(f"Ollama error: {exc}", upstream_status=exc.status_code) from exc

        content = response.message.content
        if not isinstance(content, str):
            raise BackendError("Invalid response from API")
        return strip_code_fences(content)

    async def health_check(self) -> None:
        """List local models; fails when the server is unreachable."""
        try:
            await self._client.list()
        except ConnectionError as exc:
            raise NetworkError(f"Ollama unreachable at {self._base_url}: {exc}") from exc
        except ResponseError as exc:
            raise ServiceUnavailableError(f"Ollama error: {exc}") from exc
