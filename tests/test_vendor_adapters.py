"""Tests for the provider adapters (mocked HTTP)."""

from __future__ import annotations

import base64
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.gateway.types import (
    DEFAULT_MODELS,
    ProviderId,
    ProviderRequest,
    default_model_for,
    resolve_provider,
    sample_api_config,
)
from app.gateway.vendor_adapters import (
    ADAPTER_REGISTRY,
    AnthropicAdapter,
    DataForSEOAdapter,
    GeminiAdapter,
    OllamaAdapter,
    OpenAIAdapter,
    OpenRouterAdapter,
    ProviderConfigError,
    ProviderError,
    call_provider,
    extract_serp_snippets,
    get_adapter,
)


def _make_httpx_response(status_code: int, json_data=None, text: str = "") -> httpx.Response:
    request = httpx.Request("POST", "https://example.com")
    if json_data is not None:
        return httpx.Response(status_code, json=json_data, request=request)
    return httpx.Response(status_code, text=text, request=request)


def _chat_response(text="Hello world"):
    return _make_httpx_response(200, json_data={"choices": [{"message": {"content": text}}]})


def _patched_client(mock_client_cls, response=None, side_effect=None) -> AsyncMock:
    mock_client = AsyncMock()
    if side_effect is not None:
        mock_client.post.side_effect = side_effect
    else:
        mock_client.post.return_value = response
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=None)
    mock_client_cls.return_value = mock_client
    return mock_client


def _request(provider="openai", api_key="sk-test", model="", prompt="What is AI?", **extra) -> ProviderRequest:
    return ProviderRequest(provider=provider, api_key=api_key, model=model, prompt=prompt, extra_config=extra)


# ==========================================================================
# Test: Provider types
# ==========================================================================


class TestProviderTypes:
    def test_every_provider_has_adapter_and_default_model(self):
        for provider in ProviderId:
            assert provider in ADAPTER_REGISTRY
            assert provider in DEFAULT_MODELS

    def test_resolve_aliases(self):
        assert resolve_provider("google") == ProviderId.GEMINI
        assert resolve_provider("Claude") == ProviderId.ANTHROPIC
        assert resolve_provider("grok") == ProviderId.XAI
        assert resolve_provider("google-ai-overview") == ProviderId.DATAFORSEO
        assert resolve_provider("unknown-llm") is None
        assert resolve_provider("") is None

    def test_default_model_for_unknown_uses_openai(self):
        assert default_model_for("anthropic") == "claude-3-haiku-20240307"
        assert default_model_for("mystery") == DEFAULT_MODELS[ProviderId.OPENAI]

    def test_sample_api_config(self):
        assert sample_api_config("ollama")["base_url"] == "http://localhost:11434"
        dfs = sample_api_config("dataforseo")
        assert dfs["location_code"] == 2840
        assert dfs["api_key"] == "username:password"


# ==========================================================================
# Test: Adapter selection
# ==========================================================================


class TestGetAdapter:
    def test_known_provider(self):
        assert isinstance(get_adapter("anthropic", "key"), AnthropicAdapter)
        assert isinstance(get_adapter("google", "key"), GeminiAdapter)

    def test_unknown_provider_falls_back_to_openai_shape(self, caplog):
        adapter = get_adapter("brand-new-llm", "sk-x")
        assert isinstance(adapter, OpenAIAdapter)
        assert "falling back" in caplog.text


# ==========================================================================
# Test: Request building
# ==========================================================================


class TestRequestShapes:
    def test_openai_payload(self):
        url, kwargs = OpenAIAdapter("sk-abc").build_request(_request(model="gpt-4o"))
        assert url == "https://api.openai.com/v1/chat/completions"
        assert kwargs["headers"]["Authorization"] == "Bearer sk-abc"
        assert kwargs["json"]["messages"] == [{"role": "user", "content": "What is AI?"}]
        assert kwargs["json"]["max_tokens"] == 2000

    def test_openrouter_title_header(self):
        _, kwargs = OpenRouterAdapter("sk-or").build_request(_request(provider="openrouter", model="m"))
        assert kwargs["headers"]["X-Title"]

    def test_anthropic_headers(self):
        _, kwargs = AnthropicAdapter("ant-key").build_request(_request(provider="anthropic", model="claude"))
        assert kwargs["headers"]["x-api-key"] == "ant-key"
        assert kwargs["headers"]["anthropic-version"] == "2023-06-01"
        assert "Authorization" not in kwargs["headers"]

    def test_gemini_key_in_query(self):
        url, kwargs = GeminiAdapter("g-key").build_request(_request(provider="gemini", model="gemini-pro"))
        assert url.endswith("/gemini-pro:generateContent")
        assert kwargs["params"] == {"key": "g-key"}
        assert kwargs["json"]["generationConfig"]["maxOutputTokens"] == 2000

    def test_ollama_base_url(self):
        url, kwargs = OllamaAdapter("none").build_request(
            _request(provider="ollama", model="llama3.1", base_url="http://gpu-box:11434/")
        )
        assert url == "http://gpu-box:11434/api/generate"
        assert kwargs["json"]["stream"] is False
        assert kwargs["json"]["options"]["num_predict"] == 2000

    def test_dataforseo_basic_auth(self):
        url, kwargs = DataForSEOAdapter("user:pass").build_request(_request(provider="dataforseo"))
        expected = base64.b64encode(b"user:pass").decode()
        assert kwargs["headers"]["Authorization"] == f"Basic {expected}"
        assert kwargs["json"][0]["keyword"] == "What is AI?"
        assert kwargs["json"][0]["se_type"] == "ai_overview"
        assert kwargs["json"][0]["location_code"] == 2840


# ==========================================================================
# Test: Key validation
# ==========================================================================


class TestKeyValidation:
    @pytest.mark.asyncio
    async def test_openai_key_must_start_with_sk(self):
        with pytest.raises(ProviderConfigError, match="should start with 'sk-'"):
            await OpenAIAdapter("bad-key").send(_request(api_key="bad-key"))

    @pytest.mark.asyncio
    async def test_dataforseo_key_needs_username_and_password(self):
        with pytest.raises(ProviderConfigError, match="username:password"):
            await DataForSEOAdapter("no-colon").send(_request(provider="dataforseo", api_key="no-colon"))

    @pytest.mark.asyncio
    async def test_empty_key_rejected_before_any_call(self):
        with patch("app.gateway.vendor_adapters.httpx.AsyncClient") as mock_client_cls:
            with pytest.raises(ProviderConfigError, match="API key not configured or is empty"):
                await call_provider(_request(provider="groq", api_key="   "))
            mock_client_cls.assert_not_called()


# ==========================================================================
# Test: Sending
# ==========================================================================


class TestSend:
    @pytest.mark.asyncio
    async def test_success_fills_default_model(self):
        with patch("app.gateway.vendor_adapters.httpx.AsyncClient") as mock_client_cls:
            _patched_client(mock_client_cls, _chat_response("Paris"))
            resp = await OpenAIAdapter("sk-test").send(_request())

        assert resp.text == "Paris"
        assert resp.model == "gpt-3.5-turbo"
        assert resp.provider == "openai"

    @pytest.mark.asyncio
    async def test_timeout_is_passed_to_client(self):
        with patch("app.gateway.vendor_adapters.httpx.AsyncClient") as mock_client_cls:
            _patched_client(mock_client_cls, _chat_response())
            await get_adapter("groq", "gsk").send(_request(provider="groq", api_key="gsk"), timeout=30.0)
        mock_client_cls.assert_called_once_with(timeout=30.0)

    @pytest.mark.asyncio
    async def test_non_2xx_carries_status_and_body(self):
        with patch("app.gateway.vendor_adapters.httpx.AsyncClient") as mock_client_cls:
            _patched_client(mock_client_cls, _make_httpx_response(503, text="Server is busy"))
            with pytest.raises(ProviderError) as exc_info:
                await get_adapter("mistral", "key").send(_request(provider="mistral", api_key="key"))

        err = exc_info.value
        assert err.status_code == 503
        assert err.body == "Server is busy"
        assert err.retryable
        assert "Mistral API error: 503" in str(err)

    @pytest.mark.asyncio
    async def test_openai_error_uses_error_message(self):
        body = {"error": {"message": "Incorrect API key provided"}}
        with patch("app.gateway.vendor_adapters.httpx.AsyncClient") as mock_client_cls:
            _patched_client(mock_client_cls, _make_httpx_response(401, json_data=body))
            with pytest.raises(ProviderError) as exc_info:
                await OpenAIAdapter("sk-test").send(_request())

        assert str(exc_info.value) == "OpenAI API error (Status: 401): Incorrect API key provided"
        assert not exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_timeout_becomes_retryable_error(self):
        with patch("app.gateway.vendor_adapters.httpx.AsyncClient") as mock_client_cls:
            _patched_client(mock_client_cls, side_effect=httpx.TimeoutException("timeout"))
            with pytest.raises(ProviderError) as exc_info:
                await OpenAIAdapter("sk-test").send(_request(), timeout=5.0)

        assert exc_info.value.status_code == 0
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_unexpected_structure(self):
        with patch("app.gateway.vendor_adapters.httpx.AsyncClient") as mock_client_cls:
            _patched_client(mock_client_cls, _make_httpx_response(200, json_data={"choices": []}))
            with pytest.raises(ProviderError, match="unexpected response structure"):
                await OpenAIAdapter("sk-test").send(_request())

    @pytest.mark.asyncio
    async def test_anthropic_text_path(self):
        data = {"content": [{"type": "text", "text": "Hi from Claude"}]}
        with patch("app.gateway.vendor_adapters.httpx.AsyncClient") as mock_client_cls:
            _patched_client(mock_client_cls, _make_httpx_response(200, json_data=data))
            resp = await call_provider(_request(provider="claude", api_key=" ant-key "))
        assert resp.text == "Hi from Claude"
        assert resp.provider == "anthropic"


# ==========================================================================
# Test: DataForSEO AI Overview
# ==========================================================================


def _dfs_payload(result):
    return {"tasks": [{"result": [result]}]}


def _dfs_ok() -> httpx.Response:
    return _make_httpx_response(200, json_data=_dfs_payload({"ai_overview": {"answer": "ok"}}))


class TestDataForSEO:
    def test_overview_answer_preferred(self):
        adapter = DataForSEOAdapter("u:p")
        text = adapter.extract_text(_dfs_payload({"ai_overview": {"answer": "Overview text"}, "items": []}))
        assert text == "Overview text"

    def test_falls_back_to_serp_snippets(self):
        items = [
            {"type": "found_on_web", "items": [{"title": "Web title", "description": "Web desc"}]},
            {"type": "organic", "description": "Organic desc"},
            {"type": "people_also_ask", "items": [{"title": "Is it good?"}]},
            {"type": "video", "title": "ignored"},
        ]
        text = DataForSEOAdapter("u:p").extract_text(_dfs_payload({"ai_overview": None, "items": items}))
        assert text == "Web title. Web desc. Organic desc. Is it good?"

    def test_snippets_capped_at_fifteen(self):
        items = [{"type": "organic", "description": f"d{i}"} for i in range(20)]
        text = DataForSEOAdapter("u:p").extract_text(_dfs_payload({"items": items}))
        assert text.count(". ") == 14
        assert "d15" not in text

    def test_nothing_extractable_fails(self):
        with pytest.raises(ProviderError, match="No content available"):
            DataForSEOAdapter("u:p").extract_text(_dfs_payload({"items": []}))

    def test_invalid_structure_fails(self):
        with pytest.raises(ProviderError, match="invalid response structure"):
            DataForSEOAdapter("u:p").extract_text({"tasks": []})

    def test_extract_serp_snippets_skips_non_dicts(self):
        assert extract_serp_snippets(["junk", {"type": "organic", "description": "x"}]) == ["x"]

    def test_non_dict_nested_items_skipped(self):
        items = [
            {"type": "found_on_web", "items": ["plain", {"title": "Web title"}]},
            {"type": "people_also_ask", "items": [None, {"title": "Is it good?"}]},
        ]
        text = DataForSEOAdapter("u:p").extract_text(_dfs_payload({"ai_overview": None, "items": items}))
        assert text == "Web title. Is it good?"

    @pytest.mark.asyncio
    async def test_malformed_overview_becomes_provider_error(self):
        payload = _dfs_payload({"ai_overview": "not-an-object", "items": []})
        with patch("app.gateway.vendor_adapters.httpx.AsyncClient") as mock_client_cls:
            _patched_client(mock_client_cls, _make_httpx_response(200, json_data=payload))
            with pytest.raises(ProviderError, match="unexpected response structure"):
                await DataForSEOAdapter("u:p").send(_request(provider="dataforseo", api_key="u:p"))

    @pytest.mark.asyncio
    async def test_generic_timeout_raised_to_serp_floor(self):
        with patch("app.gateway.vendor_adapters.httpx.AsyncClient") as mock_client_cls:
            _patched_client(mock_client_cls, _dfs_ok())
            await DataForSEOAdapter("u:p").send(_request(provider="dataforseo", api_key="u:p"), timeout=60.0)
        mock_client_cls.assert_called_once_with(timeout=90.0)

    @pytest.mark.asyncio
    async def test_longer_timeout_kept(self):
        with patch("app.gateway.vendor_adapters.httpx.AsyncClient") as mock_client_cls:
            _patched_client(mock_client_cls, _dfs_ok())
            await DataForSEOAdapter("u:p").send(_request(provider="dataforseo", api_key="u:p"), timeout=120.0)
        mock_client_cls.assert_called_once_with(timeout=120.0)
