"""Provider adapters — protocol-level handling for each LLM provider.

Each adapter translates a ProviderRequest into the provider's HTTP protocol,
sends it, and returns a ProviderResponse carrying the generated text.

Provider-specific behaviors:
  - OpenAI: chat completions, keys must start with ``sk-``
  - Groq / Mistral / xAI / DeepSeek / OpenRouter / Perplexity: OpenAI-compatible
  - Anthropic: Messages API, ``x-api-key`` header
  - Gemini: generateContent, key passed in the query string
  - Ollama: local ``/api/generate``, no auth
  - DataForSEO: Google AI Overview SERP repurposed as model text, basic auth
"""

from __future__ import annotations

import base64
import logging
import time
from abc import ABC, abstractmethod
from typing import Any

import httpx

from app.gateway.types import (
    DEFAULT_MODELS,
    ProviderId,
    ProviderRequest,
    ProviderResponse,
    resolve_provider,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


class ProviderConfigError(Exception):
    """Missing or malformed provider configuration. Never retried."""


class ProviderError(Exception):
    """A provider call failed. Carries the HTTP status and the raw body."""

    def __init__(self, message: str, provider: str = "", status_code: int = 0, body: str = ""):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.body = body

    @property
    def retryable(self) -> bool:
        # 0 = timeout / connection failure
        return self.status_code == 0 or self.status_code == 429 or self.status_code >= 500


class BaseProviderAdapter(ABC):
    """Base class for all provider adapters."""

    provider: ProviderId
    label: str = ""
    default_timeout: float = DEFAULT_TIMEOUT
    # Floor applied to caller-supplied timeouts
    min_timeout: float = 0.0

    def __init__(self, api_key: str, **kwargs):
        self.api_key = api_key

    def validate_api_key(self) -> None:
        """Fail fast on key formats known to be wrong."""

    @abstractmethod
    def build_request(self, request: ProviderRequest) -> tuple[str, dict[str, Any]]:
        """Return the endpoint URL and the keyword arguments for ``client.post``."""
        ...

    @abstractmethod
    def extract_text(self, data: Any) -> str:
        """Pull the generated text out of the decoded JSON body."""
        ...

    async def send(self, request: ProviderRequest, timeout: float | None = None) -> ProviderResponse:
        """Send a request to the provider and return a normalized response."""
        self.validate_api_key()
        model = request.model or DEFAULT_MODELS[self.provider]
        if model != request.model:
            request.model = model
        url, post_kwargs = self.build_request(request)
        timeout = max(timeout or self.default_timeout, self.min_timeout)
        start = time.monotonic()

        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                resp = await client.post(url, **post_kwargs)
        except httpx.TimeoutException as e:
            raise ProviderError(
                f"{self.label} API timeout after {timeout:.0f}s",
                provider=self.provider.value,
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(
                f"{self.label} API connection error: {e}",
                provider=self.provider.value,
            ) from e

        if not 200 <= resp.status_code < 300:
            raise self._error_for_status(resp)

        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError(
                f"{self.label} API returned a non-JSON body",
                provider=self.provider.value,
                status_code=resp.status_code,
                body=resp.text,
            ) from e

        try:
            text = self.extract_text(data)
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise ProviderError(
                f"{self.label} API returned an unexpected response structure",
                provider=self.provider.value,
                status_code=resp.status_code,
                body=str(data)[:2000],
            ) from e

        return ProviderResponse(
            text=text or "",
            provider=self.provider.value,
            model=model,
            latency_ms=int((time.monotonic() - start) * 1000),
            raw=data if isinstance(data, dict) else {"data": data},
        )

    def _error_for_status(self, resp: httpx.Response) -> ProviderError:
        logger.error("%s API error: status=%d body=%s", self.label, resp.status_code, resp.text[:500])
        return ProviderError(
            f"{self.label} API error: {resp.status_code} - {resp.text}",
            provider=self.provider.value,
            status_code=resp.status_code,
            body=resp.text,
        )


# ---------------------------------------------------------------------------
# OpenAI-compatible chat completions
# ---------------------------------------------------------------------------


class OpenAICompatibleAdapter(BaseProviderAdapter):
    """Shared request/response shape for every ``/chat/completions`` provider."""

    api_url: str = ""
    extra_headers: dict[str, str] = {}

    def build_request(self, request: ProviderRequest) -> tuple[str, dict[str, Any]]:
        payload = {
            "model": request.model,
            "messages": [{"role": "user", "content": request.prompt}],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            **self.extra_headers,
        }
        return self.api_url, {"json": payload, "headers": headers}

    def extract_text(self, data: Any) -> str:
        return data["choices"][0]["message"]["content"]


class OpenAIAdapter(OpenAICompatibleAdapter):
    provider = ProviderId.OPENAI
    label = "OpenAI"
    api_url = "https://api.openai.com/v1/chat/completions"

    def validate_api_key(self) -> None:
        if not self.api_key.startswith("sk-"):
            raise ProviderConfigError("Invalid OpenAI API key format. OpenAI API keys should start with 'sk-'")

    def _error_for_status(self, resp: httpx.Response) -> ProviderError:
        detail = resp.text
        try:
            body = resp.json()
            if isinstance(body, dict) and isinstance(body.get("error"), dict):
                detail = body["error"].get("message") or detail
        except ValueError:
            pass
        logger.error("OpenAI API error: status=%d detail=%s", resp.status_code, str(detail)[:500])
        return ProviderError(
            f"OpenAI API error (Status: {resp.status_code}): {detail}",
            provider=self.provider.value,
            status_code=resp.status_code,
            body=resp.text,
        )


class GroqAdapter(OpenAICompatibleAdapter):
    provider = ProviderId.GROQ
    label = "Groq"
    api_url = "https://api.groq.com/openai/v1/chat/completions"


class MistralAdapter(OpenAICompatibleAdapter):
    provider = ProviderId.MISTRAL
    label = "Mistral"
    api_url = "https://api.mistral.ai/v1/chat/completions"


class XAIAdapter(OpenAICompatibleAdapter):
    provider = ProviderId.XAI
    label = "xAI"
    api_url = "https://api.x.ai/v1/chat/completions"


class DeepSeekAdapter(OpenAICompatibleAdapter):
    provider = ProviderId.DEEPSEEK
    label = "DeepSeek"
    api_url = "https://api.deepseek.com/v1/chat/completions"


class OpenRouterAdapter(OpenAICompatibleAdapter):
    provider = ProviderId.OPENROUTER
    label = "OpenRouter"
    api_url = "https://openrouter.ai/api/v1/chat/completions"
    extra_headers = {"X-Title": "Brand Visibility Tracker"}


class PerplexityAdapter(OpenAICompatibleAdapter):
    provider = ProviderId.PERPLEXITY
    label = "Perplexity"
    api_url = "https://api.perplexity.ai/chat/completions"


# ---------------------------------------------------------------------------
# Anthropic Adapter
# ---------------------------------------------------------------------------


class AnthropicAdapter(BaseProviderAdapter):
    provider = ProviderId.ANTHROPIC
    label = "Anthropic"
    api_url = "https://api.anthropic.com/v1/messages"
    api_version = "2023-06-01"

    def build_request(self, request: ProviderRequest) -> tuple[str, dict[str, Any]]:
        payload = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [{"role": "user", "content": request.prompt}],
        }
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": self.api_version,
            "Content-Type": "application/json",
        }
        return self.api_url, {"json": payload, "headers": headers}

    def extract_text(self, data: Any) -> str:
        return data["content"][0]["text"]


# ---------------------------------------------------------------------------
# Gemini Adapter (Google AI)
# ---------------------------------------------------------------------------


class GeminiAdapter(BaseProviderAdapter):
    provider = ProviderId.GEMINI
    label = "Gemini"
    api_base = "https://generativelanguage.googleapis.com/v1beta/models"

    def build_request(self, request: ProviderRequest) -> tuple[str, dict[str, Any]]:
        url = f"{self.api_base}/{request.model}:generateContent"
        payload = {
            "contents": [{"parts": [{"text": request.prompt}]}],
            "generationConfig": {
                "temperature": request.temperature,
                "maxOutputTokens": request.max_tokens,
            },
        }
        return url, {
            "json": payload,
            "params": {"key": self.api_key},
            "headers": {"Content-Type": "application/json"},
        }

    def extract_text(self, data: Any) -> str:
        return data["candidates"][0]["content"]["parts"][0]["text"]


# ---------------------------------------------------------------------------
# Ollama Adapter (self-hosted)
# ---------------------------------------------------------------------------


class OllamaAdapter(BaseProviderAdapter):
    provider = ProviderId.OLLAMA
    label = "Ollama"
    default_base_url = "http://localhost:11434"

    def build_request(self, request: ProviderRequest) -> tuple[str, dict[str, Any]]:
        base_url = str(request.extra_config.get("base_url") or self.default_base_url).rstrip("/")
        payload = {
            "model": request.model,
            "prompt": request.prompt,
            "stream": False,
            "options": {
                "temperature": request.temperature,
                "num_predict": request.max_tokens,
            },
        }
        return f"{base_url}/api/generate", {"json": payload, "headers": {"Content-Type": "application/json"}}

    def extract_text(self, data: Any) -> str:
        return data["response"]


# ---------------------------------------------------------------------------
# DataForSEO Adapter (Google AI Overview)
# ---------------------------------------------------------------------------

_DATAFORSEO_MAX_SNIPPETS = 15


class DataForSEOAdapter(BaseProviderAdapter):
    """Google AI Overview via the DataForSEO SERP API.

    When the overview answer is empty, titles and descriptions from
    "Found on Web", organic and People-Also-Ask items are stitched together.
    """

    provider = ProviderId.DATAFORSEO
    label = "DataForSEO"
    api_url = "https://api.dataforseo.com/v3/serp/google/organic/live/advanced"
    default_timeout = 90.0
    min_timeout = 90.0

    def _credentials(self) -> tuple[str, str]:
        parts = self.api_key.split(":")
        if len(parts) != 2:
            raise ProviderConfigError("DataForSEO API key must be in format 'username:password'")
        return parts[0], parts[1]

    def validate_api_key(self) -> None:
        self._credentials()

    def build_request(self, request: ProviderRequest) -> tuple[str, dict[str, Any]]:
        username, password = self._credentials()
        token = base64.b64encode(f"{username}:{password}".encode()).decode()
        payload = [
            {
                "language_code": request.extra_config.get("language_code") or "en",
                "location_code": request.extra_config.get("location_code") or 2840,
                "keyword": request.prompt,
                "se_type": "ai_overview",
            }
        ]
        headers = {"Authorization": f"Basic {token}", "Content-Type": "application/json"}
        logger.info("Calling Google AI Overview via DataForSEO: keyword=%s", request.prompt[:100])
        return self.api_url, {"json": payload, "headers": headers}

    def extract_text(self, data: Any) -> str:
        try:
            result = data["tasks"][0]["result"][0]
        except (KeyError, IndexError, TypeError):
            result = None
        if not isinstance(result, dict):
            raise ProviderError(
                "DataForSEO API returned invalid response structure",
                provider=self.provider.value,
                status_code=200,
                body=str(data)[:2000],
            )

        answer = (result.get("ai_overview") or {}).get("answer")
        if answer:
            logger.info("DataForSEO: retrieved AI Overview content (%d chars)", len(answer))
            return answer

        logger.info("DataForSEO: AI Overview not available, extracting from search results")
        snippets = extract_serp_snippets(result.get("items") or [])
        if not snippets:
            raise ProviderError(
                "No content available from DataForSEO API",
                provider=self.provider.value,
                status_code=200,
            )
        return ". ".join(snippets[:_DATAFORSEO_MAX_SNIPPETS])


def extract_serp_snippets(items: list[dict]) -> list[str]:
    """Collect titles/descriptions from SERP items in page order."""
    snippets: list[str] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        item_type = item.get("type")
        if item_type == "found_on_web":
            for web_item in item.get("items") or []:
                if not isinstance(web_item, dict):
                    continue
                if web_item.get("title"):
                    snippets.append(web_item["title"])
                if web_item.get("description"):
                    snippets.append(web_item["description"])
        elif item_type == "organic" and item.get("description"):
            snippets.append(item["description"])
        elif item_type == "people_also_ask":
            for paa_item in item.get("items") or []:
                if not isinstance(paa_item, dict):
                    continue
                if paa_item.get("title"):
                    snippets.append(paa_item["title"])
    return snippets


# ---------------------------------------------------------------------------
# Adapter registry
# ---------------------------------------------------------------------------

ADAPTER_REGISTRY: dict[ProviderId, type[BaseProviderAdapter]] = {
    ProviderId.OPENAI: OpenAIAdapter,
    ProviderId.ANTHROPIC: AnthropicAdapter,
    ProviderId.GEMINI: GeminiAdapter,
    ProviderId.GROQ: GroqAdapter,
    ProviderId.MISTRAL: MistralAdapter,
    ProviderId.DEEPSEEK: DeepSeekAdapter,
    ProviderId.XAI: XAIAdapter,
    ProviderId.OPENROUTER: OpenRouterAdapter,
    ProviderId.OLLAMA: OllamaAdapter,
    ProviderId.PERPLEXITY: PerplexityAdapter,
    ProviderId.DATAFORSEO: DataForSEOAdapter,
}


def get_adapter(provider: str, api_key: str, **kwargs) -> BaseProviderAdapter:
    """Create an adapter for a provider name or alias.

    Unknown providers get the OpenAI request shape.
    """
    provider_id = resolve_provider(provider)
    if provider_id is None:
        logger.warning("Unknown AI provider '%s', falling back to OpenAI-compatible adapter", provider)
        provider_id = ProviderId.OPENAI
    return ADAPTER_REGISTRY[provider_id](api_key=api_key, **kwargs)


async def call_provider(request: ProviderRequest, timeout: float | None = None) -> ProviderResponse:
    """Uniform ``prompt -> text`` call across every provider.

    Raises ProviderConfigError for an empty/malformed key and ProviderError
    for failed calls.
    """
    api_key = (request.api_key or "").strip()
    if not api_key:
        raise ProviderConfigError(
            f"API key not configured or is empty for AI model: {request.provider}. "
            "Please check the API configuration."
        )
    request.api_key = api_key
    adapter = get_adapter(request.provider, api_key)
    return await adapter.send(request, timeout=timeout)
