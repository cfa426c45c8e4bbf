"""Tests for the Ollama and OpenAI provider adapters (no network)."""

from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from medextract.core.exceptions import ExtractionError
from medextract.steps.providers.base import LLMAPIError, LLMClient
from medextract.steps.providers.ollama import OllamaClient
from medextract.steps.providers.openai import OpenAIClient


def _ollama(handler, **kwargs: Any) -> OllamaClient:
    return OllamaClient(
        base_url="http://ollama.test",
        api_key="secret",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestOllamaClient:
    def test_satisfies_protocol(self):
        assert isinstance(OllamaClient(base_url="http://x"), LLMClient)

    def test_endpoint_accepts_full_url(self):
        client = OllamaClient(base_url="http://ollama.test/api/generate")
        assert client.endpoint == "http://ollama.test/api/generate"

    def test_base_url_from_env(self, monkeypatch):
        monkeypatch.setenv("MEDEXTRACT_API_URL", "http://from-env:11434/")
        assert OllamaClient().endpoint == "http://from-env:11434/api/generate"

    @pytest.mark.asyncio
    async def test_request_shape(self):
        seen: dict[str, Any] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["method"] = request.method
            seen["key"] = request.headers.get("X-API-Key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"response": '{"Medicamentos": []}'})

        payload = await _ollama(handler).generate(
            "texto", model="llama3.1:latest", system="sys", temperature=0.0,
        )

        assert payload == '{"Medicamentos": []}'
        assert seen["method"] == "POST"
        assert seen["url"] == "http://ollama.test/api/generate"
        assert seen["key"] == "secret"
        assert seen["body"] == {
            "prompt": "texto",
            "model": "llama3.1:latest",
            "system": "sys",
            "format": "json",
            "options": {"temperature": 0.0},
            "stream": False,
        }

    @pytest.mark.asyncio
    async def test_no_format_when_free_text(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"response": "{}"})

        await _ollama(handler).generate("t", model="m", json_format=False)
        assert "format" not in bodies[0]
        assert "system" not in bodies[0]

    @pytest.mark.asyncio
    async def test_http_error_status_is_transport_error(self):
        def handler(request):
            return httpx.Response(503, headers={"retry-after": "7"})

        with pytest.raises(LLMAPIError) as exc_info:
            await _ollama(handler).generate("t", model="m")
        assert exc_info.value.status_code == 503
        assert exc_info.value.retry_after == 7.0

    @pytest.mark.asyncio
    async def test_rate_limit_flag(self):
        with pytest.raises(LLMAPIError) as exc_info:
            await _ollama(lambda r: httpx.Response(429)).generate("t", model="m")
        assert exc_info.value.is_rate_limit

    @pytest.mark.asyncio
    async def test_connection_error_is_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(LLMAPIError):
            await _ollama(handler).generate("t", model="m")

    @pytest.mark.asyncio
    async def test_timeout_is_transport_error(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(LLMAPIError) as exc_info:
            await _ollama(handler).generate("t", model="m")
        assert exc_info.value.status_code == 408

    @pytest.mark.asyncio
    async def test_unparseable_body_raises_decode_error(self):
        def handler(request):
            return httpx.Response(200, text="<html>gateway</html>")

        with pytest.raises(json.JSONDecodeError):
            await _ollama(handler).generate("t", model="m")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{}, {"response": None}, ["response"]])
    async def test_missing_payload_is_extraction_error(self, body):
        def handler(request):
            return httpx.Response(200, json=body)

        with pytest.raises(ExtractionError):
            await _ollama(handler).generate("t", model="m")


# -- OpenAI-compatible ---------------------------------------------------


def _chat_response(content: str | None) -> Any:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class TestOpenAIClient:
    def test_client_not_created_at_init(self):
        client = OpenAIClient(api_key="sk-test")
        assert client._client is None

    @pytest.mark.asyncio
    async def test_generate_builds_messages(self):
        client = OpenAIClient(api_key="sk-test", base_url="http://localhost:11434/v1")
        fake = MagicMock()
        fake.chat.completions.create = AsyncMock(return_value=_chat_response('{"Medicamentos": []}'))
        client._client = fake

        content = await client.generate("texto", model="llama3.1", system="sys")

        assert content == '{"Medicamentos": []}'
        kwargs = fake.chat.completions.create.await_args.kwargs
        assert kwargs["messages"] == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "texto"},
        ]
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["temperature"] == 0.0

    @pytest.mark.asyncio
    async def test_null_content_is_extraction_error(self):
        client = OpenAIClient(api_key="sk-test")
        fake = MagicMock()
        fake.chat.completions.create = AsyncMock(return_value=_chat_response(None))
        client._client = fake

        with pytest.raises(ExtractionError):
            await client.generate("t", model="m")

    @pytest.mark.asyncio
    async def test_connection_error_translated(self):
        import openai

        client = OpenAIClient(api_key="sk-test")
        fake = MagicMock()
        request = httpx.Request("POST", "http://localhost/v1/chat/completions")
        fake.chat.completions.create = AsyncMock(side_effect=openai.APIConnectionError(request=request))
        client._client = fake

        with pytest.raises(LLMAPIError):
            await client.generate("t", model="m")
