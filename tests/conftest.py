"""Shared pytest fixtures for the TransRelay test suite.

Provides mock translation providers, a clean settings cache and a no-op
sleep so recovery delays never slow tests down.
"""

from unittest.mock import AsyncMock

import pytest

from src.core.config import get_settings
from src.core.models import TranslationRequest
from src.services.translation.base import SEGMENT_SEPARATOR, BaseTranslationProvider

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _clean_settings(monkeypatch):
    """Isolate every test from the developer's environment and .env file."""
    monkeypatch.setenv("TRANSLATION_PROVIDERS", "qianwen")
    monkeypatch.setenv("DASHSCOPE_API_KEY", "")
    monkeypatch.setenv("CLAUDE_API_KEY", "")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ---------------------------------------------------------------------------
# Provider fixtures
# ---------------------------------------------------------------------------


def make_provider(responses: dict[str, str] | None = None, error: Exception | None = None):
    """Create a mock provider.

    Known texts map through ``responses``; merged payloads are translated
    segment by segment; anything else comes back as ``"<text>-translated"``.
    """
    responses = responses or {}
    provider = AsyncMock(spec=BaseTranslationProvider)

    async def translate(text, source_language, target_language, context=None):
        if error is not None:
            raise error
        segments = text.split(SEGMENT_SEPARATOR)
        return SEGMENT_SEPARATOR.join(
            responses.get(segment, f"{segment}-translated") for segment in segments
        )

    provider.translate.side_effect = translate
    provider.health_check.return_value = None
    return provider


@pytest.fixture
def mock_provider():
    """A healthy provider that knows "Hello" en->zh."""
    return make_provider({"Hello": "你好"})


@pytest.fixture
def failing_provider():
    """A provider whose every call raises a generic error."""
    return make_provider(error=RuntimeError("boom"))


@pytest.fixture
def no_sleep():
    """Awaitable sleep replacement that records requested delays."""
    delays: list[float] = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays
    return sleep


@pytest.fixture
def make_request():
    """Factory for ``TranslationRequest`` with en->zh defaults."""

    def _make(text: str, source: str = "en", target: str = "zh", **kwargs) -> TranslationRequest:
        return TranslationRequest(
            text=text, source_language=source, target_language=target, **kwargs
        )

    return _make


@pytest.fixture
def provider_factory():
    """Expose ``make_provider`` to tests that need custom responses."""
    return make_provider
