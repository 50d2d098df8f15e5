"""
Abstract base class for translation providers.

All backends (Qianwen, Claude, Ollama) implement this interface, so the
registry and orchestrator stay provider-agnostic. Providers raise
``ServiceError`` subclasses on upstream failure and never retry on their
own; retry budgets belong to the recovery layer.
"""

from abc import ABC, abstractmethod

from src.core.utils import language_display_name

# Line inserted between segments of a merged request. Must survive translation.
SEGMENT_MARKER = "|||"
SEGMENT_SEPARATOR = f"\n\n{SEGMENT_MARKER}\n\n"


def build_translation_prompt(
    text: str,
    source_language: str,
    target_language: str,
    context: str | None = None,
) -> str:
    """Build the user prompt sent to an LLM-style translation backend.

    Args:
        text: Source text (may be a merged payload with segment markers).
        source_language: ISO 639-1 code of the source text.
        target_language: ISO 639-1 code to translate into.
        context: Optional surrounding text that helps disambiguation.

    Returns:
        Prompt string.
    """
    from_lang = language_display_name(source_language)
    to_lang = language_display_name(target_language)

    parts = [f"Please translate the following {from_lang} text to {to_lang}."]
    if context:
        parts.append(f"Context for better understanding: {context}.")
        parts.append(
            "Ensure the translation is natural, accurate, and maintains "
            "the original meaning and tone."
        )
    if SEGMENT_MARKER in text:
        parts.append(
            f"The text is split into segments by lines containing only {SEGMENT_MARKER}. "
            f"Translate each segment separately and keep every {SEGMENT_MARKER} line unchanged."
        )
    parts.append("Return only the translated text without any explanation.")
    parts.append(f"Text to translate: {text}")
    return " ".join(parts[:-1]) + "\n" + parts[-1]


class BaseTranslationProvider(ABC):
    """Interface that every translation backend must implement."""

    @abstractmethod
    async def translate(
        self,
        text: str,
        source_language: str,
        target_language: str,
        context: str | None = None,
    ) -> str:
        """Translate text from one language to another.

        Args:
            text: Text to translate.
            source_language: ISO 639-1 source code (e.g. "en").
            target_language: ISO 639-1 target code (e.g. "zh").
            context: Optional context to improve the translation.

        Returns:
            The translated text, stripped of surrounding whitespace.

        Raises:
            ServiceError: On transport failure, non-2xx status, or an
                unparseable response payload.
        """

    @abstractmethod
    async def health_check(self) -> None:
        """Probe the backend. Returns normally when healthy, raises otherwise."""

    async def aclose(self) -> None:
        """Release network resources held by the provider."""
        return None
