"""Sentry error tracking for the ops app and Celery workers.

Provider errors routinely carry request URLs and headers, and Gemini passes
its key as a query parameter, so events are scrubbed of API keys before they
leave the process. Nothing is initialized without SENTRY_DSN.
"""

import logging
import re

from app.core.config import settings

logger = logging.getLogger(__name__)

_SECRET_PATTERNS = (
    re.compile(r"([?&]key=)[^&\s\"']+"),
    re.compile(r"\bsk-[A-Za-z0-9_\-]{8,}"),
    re.compile(r"(Bearer\s+)[A-Za-z0-9._\-]+"),
    re.compile(r"(Basic\s+)[A-Za-z0-9+/=]+"),
)
_SECRET_HEADERS = {"authorization", "x-api-key", "api-key"}
REDACTED = "[redacted]"


def scrub_secrets(text: str) -> str:
    """Mask provider credentials inside an arbitrary string."""
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(lambda m: (m.group(1) if m.groups() else "") + REDACTED, text)
    return text


def _scrub(value):
    if isinstance(value, str):
        return scrub_secrets(value)
    if isinstance(value, dict):
        return {
            k: REDACTED if isinstance(k, str) and k.lower() in _SECRET_HEADERS else _scrub(v) for k, v in value.items()
        }
    if isinstance(value, list):
        return [_scrub(v) for v in value]
    return value


def before_send(event: dict, hint: dict) -> dict:
    """Sentry hook: redact credentials from messages, exceptions and request data."""
    return _scrub(event)


def init_sentry(component: str = "app") -> bool:
    """Initialize Sentry if SENTRY_DSN is configured. Returns True when enabled."""
    if not settings.sentry_dsn:
        logger.debug("Sentry DSN not configured, skipping (%s)", component)
        return False

    import sentry_sdk
    from sentry_sdk.integrations.celery import CeleryIntegration
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.app_env,
        traces_sample_rate=settings.sentry_traces_sample_rate if settings.app_env == "production" else 1.0,
        send_default_pii=False,
        before_send=before_send,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            CeleryIntegration(),
        ],
    )
    sentry_sdk.set_tag("component", component)
    logger.info("Sentry initialized (env=%s, component=%s)", settings.app_env, component)
    return True
