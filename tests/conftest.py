from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from app.core.config import settings

# Override settings for tests
settings.app_env = "development"
settings.sentry_dsn = ""
settings.telegram_bot_token = ""
settings.telegram_admin_chat_id = ""

from app.distribution.kv_store import InMemoryKeyValueStore  # noqa: E402
from app.models.ai_model import AiModel  # noqa: E402
from app.models.brand import Brand, BrandSubreddit, Competitor  # noqa: E402


@pytest.fixture
def memory_store():
    return InMemoryKeyValueStore()


@pytest.fixture
def mock_db():
    """AsyncSession stand-in: awaitable execute/flush/commit, sync add."""
    db = AsyncMock()
    db.add = MagicMock()
    db.add_all = MagicMock()
    result = MagicMock()
    result.scalar.return_value = None
    result.scalars.return_value.all.return_value = []
    result.all.return_value = []
    db.execute.return_value = result
    return db


@pytest.fixture
def make_model():
    """Factory for detached AiModel rows."""

    def _make(
        name: str = "openai",
        model_id: int = 1,
        api_key: str | None = "sk-test-key",
        order: int = 1,
        model: str | None = None,
        **config,
    ) -> AiModel:
        api_config = dict(config)
        if api_key is not None:
            api_config["api_key"] = api_key
        if model is not None:
            api_config["model"] = model
        return AiModel(
            id=model_id,
            name=name,
            display_name=name.title(),
            is_enabled=True,
            prompts_per_brand=25,
            order=order,
            api_config=api_config,
        )

    return _make


@pytest.fixture
def brand():
    """Acme with one accepted, one suggested competitor and an approved subreddit."""
    b = Brand(id=10, name="Acme", website="https://www.acme.com", description="Project tools", country="US")
    b.competitors = [
        Competitor(id=1, brand_id=10, name="Globex", domain="globex.com", tracked_names=["Globex Corp"], status="accepted"),
        Competitor(id=2, brand_id=10, name="Initech", domain="initech.io", tracked_names=None, status="suggested"),
    ]
    b.subreddits = [BrandSubreddit(id=1, brand_id=10, subreddit_name="projectmanagement", status="approved")]
    return b
