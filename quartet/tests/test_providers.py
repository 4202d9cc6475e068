import json

import httpx
import pytest

from quartet.errors import ErrorKind
from quartet.providers.chat_completions import ChatCompletionsProvider
from quartet.providers.gemini import GeminiProvider
from quartet.providers.registry import ProviderRegistry
from quartet.settings import load_settings

from conftest import CHAT_OK, GEMINI_OK, KEYS, Recorder


async def _invoke(adapter, handler, prompt="What is 2+2?"):
    rec = Recorder(handler)
    async with httpx.AsyncClient(transport=rec.transport) as client:
        outcome = await adapter.invoke(prompt, client)
    return outcome, rec


def test_registry_families(settings):
    r = ProviderRegistry(settings)
    assert isinstance(r.get("openai"), ChatCompletionsProvider)
    assert isinstance(r.get("gemini"), GeminiProvider)
    assert isinstance(r.get("groq"), ChatCompletionsProvider)


@pytest.mark.asyncio
async def test_chat_completions_request_and_extraction(settings):
    adapter = ProviderRegistry(settings).resolve("openai")
    outcome, rec = await _invoke(adapter, lambda req: httpx.Response(200, json=CHAT_OK))
    assert outcome.ok
    assert outcome.text == "4"
    assert outcome.error is None
    assert outcome.raw == CHAT_OK

    (req,) = rec.requests
    assert req.method == "POST"
    assert str(req.url) == "https://api.groq.com/openai/v1/chat/completions"
    assert req.headers["Authorization"] == "Bearer groq-test-key"
    body = json.loads(req.content)
    assert body == {"model": "llama-3.1-8b-instant", "messages": [{"role": "user", "content": "What is 2+2?"}]}


@pytest.mark.asyncio
async def test_gemini_request_and_extraction(settings):
    adapter = ProviderRegistry(settings).resolve("gemini")
    outcome, rec = await _invoke(adapter, lambda req: httpx.Response(200, json=GEMINI_OK))
    assert outcome.ok
    assert outcome.text == "4"

    (req,) = rec.requests
    assert req.url.host == "generativelanguage.googleapis.com"
    assert req.url.path.endswith("/models/gemini-2.0-flash:generateContent")
    assert req.url.params["key"] == "gemini-test-key"
    assert "authorization" not in req.headers
    assert json.loads(req.content) == {"contents": [{"parts": [{"text": "What is 2+2?"}]}]}


@pytest.mark.asyncio
async def test_error_object_in_body_becomes_error_message(settings):
    adapter = ProviderRegistry(settings).resolve("gemini")
    body = {"error": {"code": 429, "message": "quota exceeded"}}
    outcome, _ = await _invoke(adapter, lambda req: httpx.Response(200, json=body))
    assert not outcome.ok
    assert outcome.text == ""
    assert outcome.error_kind is ErrorKind.UPSTREAM_ERROR
    assert outcome.error == "Gemini error: quota exceeded"


@pytest.mark.asyncio
async def test_empty_output_falls_back_to_literal(settings):
    adapter = ProviderRegistry(settings).resolve("gemini")
    outcome, _ = await _invoke(adapter, lambda req: httpx.Response(200, json={"candidates": []}))
    assert outcome.ok
    assert outcome.text == "No response"

    chat = ProviderRegistry(settings).resolve("groq")
    empty = {"choices": [{"message": {"content": ""}}]}
    outcome, _ = await _invoke(chat, lambda req: httpx.Response(200, json=empty))
    assert outcome.ok
    assert outcome.text == "No response"


@pytest.mark.asyncio
async def test_non_2xx_reports_status_and_cause(settings):
    adapter = ProviderRegistry(settings).resolve("deepseek")
    outcome, _ = await _invoke(adapter, lambda req: httpx.Response(500, json={"error": {"message": "boom"}}))
    assert not outcome.ok
    assert outcome.error_kind is ErrorKind.UPSTREAM_ERROR
    assert outcome.error == "DeepSeek (Groq) error: HTTP 500: boom"

    outcome, _ = await _invoke(adapter, lambda req: httpx.Response(502, text="Bad gateway upstream"))
    assert not outcome.ok
    assert "HTTP 502" in outcome.error
    assert "Bad gateway upstream" in outcome.error


@pytest.mark.asyncio
async def test_invalid_json_on_success_is_upstream_error(settings):
    adapter = ProviderRegistry(settings).resolve("groq")
    outcome, _ = await _invoke(adapter, lambda req: httpx.Response(200, text="<html>oops</html>"))
    assert not outcome.ok
    assert outcome.error_kind is ErrorKind.UPSTREAM_ERROR
    assert "not valid JSON" in outcome.error


@pytest.mark.asyncio
async def test_missing_credential_fails_fast_without_network():
    s = load_settings(env={"GROQ_API_KEY": KEYS["GROQ_API_KEY"]})
    adapter = ProviderRegistry(s).resolve("gemini")
    assert not adapter.enabled
    outcome, rec = await _invoke(adapter, lambda req: httpx.Response(200, json=GEMINI_OK))
    assert not outcome.ok
    assert outcome.error_kind is ErrorKind.MISSING_CREDENTIAL
    assert outcome.error == "GEMINI credential missing (GEMINI_API_KEY not set)"
    assert rec.requests == []


@pytest.mark.asyncio
async def test_transport_error_is_captured(settings):
    adapter = ProviderRegistry(settings).resolve("openai")

    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    outcome, _ = await _invoke(adapter, refuse)
    assert not outcome.ok
    assert outcome.error_kind is ErrorKind.TRANSPORT_ERROR
    assert outcome.error.startswith("OpenAI (Groq) error:")
    assert "connection refused" in outcome.error


@pytest.mark.asyncio
async def test_transport_timeout_is_captured(settings):
    adapter = ProviderRegistry(settings).resolve("openai")

    def slow(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    outcome, _ = await _invoke(adapter, slow)
    assert not outcome.ok
    assert outcome.error_kind is ErrorKind.TIMEOUT
    assert "OpenAI (Groq) timed out after 30s" in outcome.error


@pytest.mark.asyncio
async def test_broken_endpoint_template_is_config_error_not_exception():
    env = dict(KEYS, GEMINI_URL="https://gemini.test/models/{model}:generateContent?key={key}")
    adapter = ProviderRegistry(load_settings(env=env)).resolve("gemini")
    outcome, rec = await _invoke(adapter, lambda req: httpx.Response(200, json=GEMINI_OK))
    assert not outcome.ok
    assert outcome.error_kind is ErrorKind.CONFIG_ERROR
    assert outcome.error.startswith("Gemini misconfigured:")
    assert "KeyError" in outcome.error
    assert rec.requests == []


@pytest.mark.asyncio
async def test_error_object_without_message_is_still_an_error(settings):
    adapter = ProviderRegistry(settings).resolve("gemini")
    outcome, _ = await _invoke(adapter, lambda req: httpx.Response(200, json={"error": {"code": 429}}))
    assert not outcome.ok
    assert outcome.error_kind is ErrorKind.UPSTREAM_ERROR
    assert outcome.error == "Gemini error: 429"

    body = {"error": {"details": ["blocked"]}}
    outcome, _ = await _invoke(adapter, lambda req: httpx.Response(200, json=body))
    assert not outcome.ok
    assert outcome.error == 'Gemini error: {"details": ["blocked"]}'


@pytest.mark.asyncio
async def test_json_null_body_is_empty_answer_not_invalid_json(settings):
    adapter = ProviderRegistry(settings).resolve("gemini")
    outcome, _ = await _invoke(adapter, lambda req: httpx.Response(200, content=b"null"))
    assert outcome.ok
    assert outcome.text == "No response"


@pytest.mark.asyncio
async def test_openai_slot_uses_its_own_fallback_text(settings):
    adapter = ProviderRegistry(settings).resolve("openai")
    outcome, _ = await _invoke(adapter, lambda req: httpx.Response(200, json={"choices": []}))
    assert outcome.ok
    assert outcome.text == "No response from Groq (OpenAI mode)"
