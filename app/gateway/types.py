"""Core types for the LLM provider gateway."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ProviderId(str, Enum):
    """Supported LLM providers (the ``AiModel.name`` keys)."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    GROQ = "groq"
    MISTRAL = "mistral"
    DEEPSEEK = "deepseek"
    XAI = "xai"
    OPENROUTER = "openrouter"
    OLLAMA = "ollama"
    PERPLEXITY = "perplexity"
    DATAFORSEO = "dataforseo"


# Alternative names admins use for the same provider
PROVIDER_ALIASES: dict[str, ProviderId] = {
    "google": ProviderId.GEMINI,
    "google-ai": ProviderId.GEMINI,
    "claude": ProviderId.ANTHROPIC,
    "grok": ProviderId.XAI,
    "x-ai": ProviderId.XAI,
    "google-ai-overview": ProviderId.DATAFORSEO,
}


def resolve_provider(name: str | None) -> ProviderId | None:
    """Map a configured provider name (or alias) to a ProviderId, case-insensitively."""
    key = (name or "").strip().lower()
    if not key:
        return None
    try:
        return ProviderId(key)
    except ValueError:
        return PROVIDER_ALIASES.get(key)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2000

DEFAULT_MODELS: dict[ProviderId, str] = {
    ProviderId.OPENAI: "gpt-3.5-turbo",
    ProviderId.GEMINI: "gemini-pro",
    ProviderId.PERPLEXITY: "llama-3.1-sonar-small-128k-online",
    ProviderId.ANTHROPIC: "claude-3-haiku-20240307",
    ProviderId.XAI: "grok-beta",
    ProviderId.GROQ: "llama-3.1-70b-versatile",
    ProviderId.MISTRAL: "mistral-small-latest",
    ProviderId.OLLAMA: "llama3.1",
    ProviderId.DEEPSEEK: "deepseek-chat",
    ProviderId.OPENROUTER: "meta-llama/llama-3.1-8b-instruct:free",
    ProviderId.DATAFORSEO: "ai_overview",
}

# Providers whose answers feed post prompt generation and citation checks at full volume
PRIMARY_PROVIDERS: tuple[ProviderId, ...] = (ProviderId.OPENAI, ProviderId.GEMINI, ProviderId.PERPLEXITY)


def default_model_for(name: str | None) -> str:
    provider = resolve_provider(name) or ProviderId.OPENAI
    return DEFAULT_MODELS[provider]


# ---------------------------------------------------------------------------
# Request / Response
# ---------------------------------------------------------------------------


@dataclass
class ProviderRequest:
    """One stateless completion call: prompt in, text out."""

    provider: str
    api_key: str
    model: str
    prompt: str
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    extra_config: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProviderResponse:
    """Normalized provider answer, identical in shape for every vendor."""

    text: str
    provider: str = ""
    model: str = ""
    latency_ms: int = 0
    raw: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "provider": self.provider,
            "model": self.model,
            "latency_ms": self.latency_ms,
        }


# ---------------------------------------------------------------------------
# Sample configurations (admin onboarding)
# ---------------------------------------------------------------------------

_SAMPLE_API_KEYS: dict[ProviderId, str] = {
    ProviderId.OPENAI: "sk-your-openai-api-key-here",
    ProviderId.GEMINI: "your-google-ai-api-key-here",
    ProviderId.PERPLEXITY: "pplx-your-perplexity-api-key-here",
    ProviderId.ANTHROPIC: "sk-ant-REDACTED",
    ProviderId.XAI: "xai-your-xai-api-key-here",
    ProviderId.GROQ: "gsk_your-groq-api-key-here",
    ProviderId.MISTRAL: "your-mistral-api-key-here",
    ProviderId.OLLAMA: "not-required-for-local-ollama",
    ProviderId.DEEPSEEK: "sk-your-deepseek-api-key-here",
    ProviderId.OPENROUTER: "sk-or-your-openrouter-api-key-here",
    ProviderId.DATAFORSEO: "username:password",
}


def sample_api_config(name: str) -> dict[str, Any]:
    """Template ``api_config`` for a provider, used when an admin adds a model."""
    provider = resolve_provider(name) or ProviderId.OPENAI
    config: dict[str, Any] = {
        "api_key": _SAMPLE_API_KEYS[provider],
        "model": DEFAULT_MODELS[provider],
        "temperature": DEFAULT_TEMPERATURE,
        "max_tokens": DEFAULT_MAX_TOKENS,
    }
    if provider == ProviderId.OLLAMA:
        config["base_url"] = "http://localhost:11434"
    elif provider == ProviderId.DATAFORSEO:
        config["location_code"] = 2840
        config["language_code"] = "en"
    return config
