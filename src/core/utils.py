"""Shared utility functions for TransRelay."""

import re

_HAN_PATTERN = re.compile(r"[\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff]")

LANGUAGE_NAMES = {
    "zh": "Chinese",
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "ja": "Japanese",
    "ko": "Korean",
}


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences wrapping an LLM response."""
    text = text.strip()
    if text.startswith("```"):
        text = re.sub(r"^```\w*\n?", "", text)
        text = re.sub(r"\n?```$", "", text)
    return text.strip()


def language_display_name(code: str) -> str:
    """Map an ISO 639-1 code to the English name used in prompts."""
    return LANGUAGE_NAMES.get(code.lower(), "Unknown")


def detect_language(text: str) -> str:
    """Rough language guess: "zh" if the text contains Han characters, else "en"."""
    return "zh" if _HAN_PATTERN.search(text) else "en"
