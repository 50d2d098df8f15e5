"""Unit tests for the Qianwen (DashScope) translation provider."""

import json

import httpx
import pytest

from src.core.exceptions import (
    AuthenticationError,
    BackendError,
    EmptyTextError,
    MissingAPIKeyError,
    NetworkError,
    RateLimitedError,
    ServiceUnavailableError,
)
from src.services.translation.qianwen import QianwenProvider

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _provider(handler, api_key: str = "sk-test") -> QianwenProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return QianwenProvider(api_key=api_key, client=client)


def _ok(text: str):
    def handler(request: httpx.Request) -> httpx.Response:
        handler.requests.append(request)
        return httpx.Response(200, json={"output": {"text": text}})

    handler.requests = []
    return handler


def _status(code: int):
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(code, json={"message": "error"})

    return handler


# ---------------------------------------------------------------------------
# TestTranslate
# ---------------------------------------------------------------------------


class TestTranslate:
    @pytest.mark.asyncio
    async def test_returns_output_text(self):
        provider = _provider(_ok("你好"))
        assert await provider.translate("Hello", "en", "zh") == "你好"

    @pytest.mark.asyncio
    async def test_request_payload(self):
        handler = _ok("你好")
        provider = _provider(handler)

        await provider.translate("Hello", "en", "zh")

        request = handler.requests[0]
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["model"] == "qwen-turbo"
        assert body["parameters"] == {"temperature": 0.3, "max_tokens": 300, "top_p": 0.8}
        prompt = body["input"]["messages"][0]["content"]
        assert "English" in prompt
        assert "Chinese" in prompt
        assert prompt.endswith("Text to translate: Hello")

    @pytest.mark.asyncio
    async def test_context_raises_token_limit(self):
        handler = _ok("银行")
        provider = _provider(handler)

        await provider.translate("bank", "en", "zh", context="river side")

        body = json.loads(handler.requests[0].content)
        assert body["parameters"]["max_tokens"] == 500
        assert "river side" in body["input"]["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_strips_code_fences(self):
        provider = _provider(_ok("```\n你好\n```"))
        assert await provider.translate("Hello", "en", "zh") == "你好"

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        provider = _provider(_ok("x"), api_key="")
        with pytest.raises(MissingAPIKeyError):
            await provider.translate("Hello", "en", "zh")

    @pytest.mark.asyncio
    async def test_empty_text(self):
        provider = _provider(_ok("x"))
        with pytest.raises(EmptyTextError):
            await provider.translate("   ", "en", "zh")


# ---------------------------------------------------------------------------
# TestErrorMapping
# ---------------------------------------------------------------------------


class TestErrorMapping:
    @pytest.mark.parametrize(
        ("status", "error"),
        [
            (429, RateLimitedError),
            (401, AuthenticationError),
            (403, AuthenticationError),
            (503, ServiceUnavailableError),
            (500, BackendError),
            (400, BackendError),
        ],
    )
    @pytest.mark.asyncio
    async def test_http_status(self, status, error):
        provider = _provider(_status(status))
        with pytest.raises(error):
            await provider.translate("Hello", "en", "zh")

    @pytest.mark.asyncio
    async def test_backend_error_keeps_upstream_status(self):
        provider = _provider(_status(400))
        with pytest.raises(BackendError) as exc_info:
            await provider.translate("Hello", "en", "zh")
        assert exc_info.value.upstream_status == 400

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        provider = _provider(handler)
        with pytest.raises(NetworkError, match="Network error"):
            await provider.translate("Hello", "en", "zh")

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        provider = _provider(handler)
        with pytest.raises(NetworkError, match="timed out"):
            await provider.translate("Hello", "en", "zh")

    @pytest.mark.asyncio
    async def test_missing_output_text(self):
        provider = _provider(lambda _r: httpx.Response(200, json={"output": {}}))
        with pytest.raises(BackendError, match="Invalid response"):
            await provider.translate("Hello", "en", "zh")

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        provider = _provider(lambda _r: httpx.Response(200, text="<html>"))
        with pytest.raises(BackendError, match="Invalid response"):
            await provider.translate("Hello", "en", "zh")


# ---------------------------------------------------------------------------
# TestHealthCheck
# ---------------------------------------------------------------------------


class TestHealthCheck:
    @pytest.mark.asyncio
    async def test_probe_translates_hello(self):
        handler = _ok("你好")
        provider = _provider(handler)

        await provider.health_check()

        body = json.loads(handler.requests[0].content)
        assert "Hello" in body["input"]["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_probe_failure_raises(self):
        provider = _provider(_status(503))
        with pytest.raises(ServiceUnavailableError):
            await provider.health_check()

    @pytest.mark.asyncio
    async def test_aclose_closes_client(self):
        provider = _provider(_ok("x"))
        await provider.aclose()
        assert provider._client.is_closed
