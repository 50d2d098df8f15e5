"""Unit tests for prompt building, language helpers and the provider factory."""

from unittest.mock import patch

import pytest

from src.core.utils import detect_language, language_display_name, strip_code_fences
from src.services.translation import create_provider
from src.services.translation.base import SEGMENT_SEPARATOR, build_translation_prompt


class TestPrompt:
    def test_basic_prompt(self):
        prompt = build_translation_prompt("Hello", "en", "zh")

        assert prompt.startswith("Please translate the following English text to Chinese.")
        assert prompt.endswith("\nText to translate: Hello")
        assert "Context" not in prompt

    def test_context_included(self):
        prompt = build_translation_prompt("bank", "en", "zh", context="river")
        assert "Context for better understanding: river." in prompt

    def test_merged_payload_explains_markers(self):
        prompt = build_translation_prompt(f"a{SEGMENT_SEPARATOR}b", "en", "zh")
        assert "segments" in prompt


class TestLanguageHelpers:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [("你好", "zh"), ("Hello 世界", "zh"), ("Hello", "en"), ("", "en"), ("こんにちは", "en")],
    )
    def test_detect_language(self, text, expected):
        assert detect_language(text) == expected

    def test_display_name(self):
        assert language_display_name("ZH") == "Chinese"
        assert language_display_name("xx") == "Unknown"

    def test_strip_code_fences(self):
        assert strip_code_fences("```text\n你好\n```") == "你好"
        assert strip_code_fences("  plain  ") == "plain"


class TestCreateProvider:
    def test_qianwen(self):
        from src.services.translation.qianwen import QianwenProvider

        assert isinstance(create_provider("qianwen", api_key="sk"), QianwenProvider)

    def test_ollama(self):
        with patch("src.services.translation.ollama.AsyncClient"):
            provider = create_provider("ollama")
        assert type(provider).__name__ == "OllamaTranslationProvider"

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown translation provider"):
            create_provider("deepl")
