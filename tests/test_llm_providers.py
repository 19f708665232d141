"""Tests for llm_providers.py"""

import json

import httpx
import pytest

from aiwriter.core.llm_providers import LLMError, OpenAIChatProvider, get_chat_provider


def completion(content="你好", model="gpt-4o-mini"):
    return {
        "model": model,
        "choices": [{"message": {"content": content}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5},
    }


def provider(handler, **kwargs):
    return OpenAIChatProvider("sk-test", transport=httpx.MockTransport(handler), **kwargs)


@pytest.mark.asyncio
class TestOpenAIChatProvider:
    """Tests for the completion provider."""

    async def test_complete_sends_system_and_user(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, json=completion())

        text = await provider(handler).complete("系統", "使用者", temperature=0.5, max_tokens=100)

        assert text == "你好"
        body = seen[0]
        assert body["messages"] == [
            {"role": "system", "content": "系統"},
            {"role": "user", "content": "使用者"},
        ]
        assert body["temperature"] == 0.5
        assert body["max_tokens"] == 100

    async def test_missing_content_is_empty_string(self):
        def handler(request):
            return httpx.Response(200, json={"choices": []})

        assert await provider(handler).complete(None, "x") == ""

    async def test_missing_key(self):
        with pytest.raises(LLMError):
            await OpenAIChatProvider("").complete(None, "x")

    async def test_unauthorized(self):
        def handler(request):
            return httpx.Response(401, json={"error": "bad key"})

        with pytest.raises(LLMError) as exc:
            await provider(handler).complete(None, "x")
        assert not exc.value.retriable

    async def test_server_error_is_retriable(self):
        def handler(request):
            return httpx.Response(503, text="unavailable")

        with pytest.raises(LLMError) as exc:
            await provider(handler).complete(None, "x")
        assert exc.value.retriable

    async def test_rate_limit_backoff_then_success(self, monkeypatch):
        monkeypatch.setattr("aiwriter.core.llm_providers.INITIAL_DELAY", 0)
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(429, text="slow down")
            return httpx.Response(200, json=completion("ok"))

        assert await provider(handler).complete(None, "x") == "ok"
        assert len(calls) == 3

    async def test_quota_exhausted_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429, text="You exceeded your current quota")

        with pytest.raises(LLMError):
            await provider(handler).complete(None, "x")
        assert len(calls) == 1

    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(LLMError) as exc:
            await provider(handler).complete(None, "x")
        assert exc.value.retriable

    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(LLMError) as exc:
            await provider(handler).complete(None, "x")
        assert exc.value.retriable
        assert "無法連線" in str(exc.value)

    async def test_non_json_body(self):
        def handler(request):
            return httpx.Response(200, text="<html>bad gateway</html>")

        with pytest.raises(LLMError):
            await provider(handler).complete(None, "x")

    async def test_health_check_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = await provider(handler).health_check()
        assert not result.healthy
        assert result.details == {"retriable": True}

    async def test_health_check_without_key(self):
        result = await OpenAIChatProvider("").health_check()
        assert not result.healthy


class TestFactory:
    def test_unknown_model(self):
        with pytest.raises(ValueError):
            OpenAIChatProvider("k", model="gpt-unknown")

    def test_factory_uses_settings(self, make_settings):
        chat = get_chat_provider(make_settings(openai_api_key="k", openai_model="gpt-4o"))
        assert chat.model_id == "gpt-4o"

    def test_unknown_provider(self, make_settings):
        with pytest.raises(ValueError):
            get_chat_provider(make_settings(llm_provider="other"))

    def test_estimate_cost(self):
        assert OpenAIChatProvider("k").estimate_cost(1_000_000, 0) > 0
