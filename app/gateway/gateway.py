"""Provider gateway — the single place the rest of the app calls LLMs through.

Responsibilities:
  1. Resolve a configured AiModel into a ProviderRequest (key, model id, defaults)
  2. Dispatch via the provider adapter with an explicit timeout
  3. Record Prometheus metrics and feed the selector's performance stats

Retries are not attempted here; the Celery task owning the call retries.

Usage:
    gateway = ProviderGateway(selector=ModelSelector(store))
    response = await gateway.complete(model, prompt, timeout=60)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

from app.core.config import settings
from app.core.metrics import PROVIDER_LATENCY, PROVIDER_REQUESTS
from app.distribution.selector import ModelSelector
from app.gateway.types import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    ProviderRequest,
    ProviderResponse,
    default_model_for,
)
from app.gateway.vendor_adapters import ProviderConfigError, ProviderError, call_provider
from app.models.ai_model import AiModel

logger = logging.getLogger(__name__)

HEALTH_CHECK_PROMPT = 'Hello. Respond with "OK" if you can process this message.'
HEALTH_CHECK_MAX_TOKENS = 50
CONNECTION_TEST_PROMPT = "Test prompt: What is artificial intelligence? Please respond briefly."

# api_config keys that are not adapter-specific
_RESERVED_CONFIG_KEYS = {"api_key", "model", "temperature", "max_tokens"}


@dataclass
class ConnectionCheck:
    """Outcome of probing one model."""

    success: bool
    model: str
    message: str = ""
    response: str = ""
    error: str = ""
    error_type: str = ""  # configuration | api_error | empty_response

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "model": self.model,
            "message": self.message,
            "response": self.response,
            "error": self.error,
            "error_type": self.error_type,
        }


def build_request(
    model: AiModel,
    prompt: str,
    *,
    temperature: float | None = None,
    max_tokens: int | None = None,
    default_model: str | None = None,
) -> ProviderRequest:
    """Turn an AiModel's ``api_config`` into a provider request."""
    config: dict[str, Any] = model.api_config or {}
    return ProviderRequest(
        provider=model.name,
        api_key=str(config.get("api_key") or ""),
        model=config.get("model") or default_model or default_model_for(model.name),
        prompt=prompt,
        temperature=temperature if temperature is not None else float(config.get("temperature", DEFAULT_TEMPERATURE)),
        max_tokens=max_tokens if max_tokens is not None else int(config.get("max_tokens", DEFAULT_MAX_TOKENS)),
        extra_config={k: v for k, v in config.items() if k not in _RESERVED_CONFIG_KEYS},
    )


class ProviderGateway:
    """Calls configured models and keeps per-model performance stats current."""

    def __init__(self, selector: ModelSelector | None = None):
        self.selector = selector

    async def complete(
        self,
        model: AiModel,
        prompt: str,
        *,
        timeout: float | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        default_model: str | None = None,
    ) -> ProviderResponse:
        """Send ``prompt`` to ``model``. Raises ProviderConfigError / ProviderError."""
        request = build_request(
            model, prompt, temperature=temperature, max_tokens=max_tokens, default_model=default_model
        )
        start = time.monotonic()
        try:
            response = await call_provider(request, timeout=timeout)
        except ProviderConfigError:
            PROVIDER_REQUESTS.labels(provider=model.name, outcome="config_error").inc()
            raise
        except ProviderError as e:
            elapsed = time.monotonic() - start
            PROVIDER_REQUESTS.labels(provider=model.name, outcome="error").inc()
            PROVIDER_LATENCY.labels(provider=model.name).observe(elapsed)
            logger.error(
                "Provider call failed: model=%s status=%d error=%s",
                model.name,
                e.status_code,
                e,
                extra={"provider": model.name},
            )
            await self._record(model, False, elapsed)
            raise

        elapsed = time.monotonic() - start
        PROVIDER_REQUESTS.labels(provider=model.name, outcome="success").inc()
        PROVIDER_LATENCY.labels(provider=model.name).observe(elapsed)
        logger.info(
            "Provider call ok: model=%s (%s) %.2fs, %d chars",
            model.name,
            response.model,
            elapsed,
            len(response.text),
            extra={"provider": model.name},
        )
        await self._record(model, True, elapsed)
        return response

    async def _record(self, model: AiModel, success: bool, elapsed: float) -> None:
        if self.selector is not None:
            await self.selector.update_performance_metrics(model, success, elapsed)

    async def check_model(self, model: AiModel, timeout: float | None = None) -> ConnectionCheck:
        """Health probe: a tiny prompt that any working model answers."""
        label = model.display_name or model.name
        if not model.has_api_key:
            logger.warning("Model %s has no API key configured", model.name)
            return ConnectionCheck(
                success=False,
                model=label,
                message=f"API key not configured for {label}.",
                error="API key not configured",
                error_type="configuration",
            )
        try:
            response = await self.complete(
                model,
                HEALTH_CHECK_PROMPT,
                timeout=timeout or settings.health_check_timeout_seconds,
                max_tokens=HEALTH_CHECK_MAX_TOKENS,
            )
        except ProviderConfigError as e:
            return ConnectionCheck(False, label, f"{label} is misconfigured.", error=str(e), error_type="configuration")
        except ProviderError as e:
            return ConnectionCheck(False, label, f"{label} request failed.", error=str(e), error_type="api_error")

        if not response.text.strip():
            return ConnectionCheck(
                False, label, f"{label} returned an empty response.", error="Empty response", error_type="empty_response"
            )
        return ConnectionCheck(True, label, f"{label} is working correctly.", response=response.text)

    async def test_model(self, model: AiModel) -> ConnectionCheck:
        """Admin "test connection": requires both an API key and a model id."""
        label = model.display_name or model.name
        config = model.api_config or {}
        if not model.has_api_key:
            return ConnectionCheck(
                False,
                label,
                f"API key not configured for {label}. Please configure the API key in the AI Model settings.",
                error_type="configuration",
            )
        if not config.get("model"):
            return ConnectionCheck(
                False,
                label,
                f"Model not configured for {label}. Please configure the model in the AI Model settings.",
                error_type="configuration",
            )
        try:
            response = await self.complete(model, CONNECTION_TEST_PROMPT, timeout=settings.health_check_timeout_seconds)
        except (ProviderConfigError, ProviderError) as e:
            return ConnectionCheck(False, label, f"Failed to connect to {label}.", error=str(e), error_type="api_error")
        return ConnectionCheck(True, label, f"{label} is working correctly.", response=response.text)
