"""Tests for multi-model prompt generation and prompt listing."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.gateway.types import ProviderResponse
from app.gateway.vendor_adapters import ProviderError
from app.models.brand_prompt import BrandPrompt
from app.models.post import Post, PostPrompt
from app.prompt_engine.generator import SOURCE_AI, SOURCE_FALLBACK, SOURCE_USER, SubjectContext
from app.services.prompt_service import (
    add_custom_post_prompt,
    add_custom_prompt,
    brand_prompt_count,
    collect_questions,
    generate_prompts_for_brand,
    generate_prompts_for_post,
    get_brand_prompts_with_ratio,
    get_post_prompts_with_ratio,
    post_prompt_count,
)

ANSWERS = {
    "openai": "1. What is the best sprint planning tool?\n2. How do teams track velocity?",
    "gemini": "1. What is the best sprint planning tool?\n2. Which kanban boards support automation?",
}


def _gateway(answers=ANSWERS) -> MagicMock:
    async def _complete(model, prompt, **kwargs):
        answer = answers.get(model.name)
        if isinstance(answer, Exception):
            raise answer
        return ProviderResponse(text=answer or "", provider=model.name, model="m")

    gateway = MagicMock()
    gateway.complete = AsyncMock(side_effect=_complete)
    return gateway


def _post() -> Post:
    return Post(id=3, brand_id=10, url="https://acme.com/blog/sprints", title="Sprint planning guide")


class TestCounts:
    def test_brand_count_uses_model_setting(self, make_model):
        model = make_model()
        assert brand_prompt_count(model) == 25
        model.prompts_per_brand = 0
        assert brand_prompt_count(model) == 25

    def test_post_count_by_provider_tier(self, make_model):
        assert post_prompt_count(make_model(name="perplexity")) == 25
        assert post_prompt_count(make_model(name="gemini")) == 25
        assert post_prompt_count(make_model(name="groq")) == 5


class TestCollectQuestions:
    @pytest.mark.asyncio
    async def test_pools_and_dedups_across_models(self, make_model):
        models = [make_model(name="openai"), make_model(name="gemini", model_id=2)]
        subject = SubjectContext(kind="brand", url="https://acme.com", name="Acme")

        pairs = await collect_questions(_gateway(), models, subject, brand_prompt_count)

        assert pairs == [
            ("What is the best sprint planning tool?", "openai"),
            ("How do teams track velocity?", "openai"),
            ("Which kanban boards support automation?", "gemini"),
        ]

    @pytest.mark.asyncio
    async def test_skips_models_without_key_and_failures(self, make_model):
        models = [
            make_model(name="openai", api_key=None),
            make_model(name="groq", model_id=2),
            make_model(name="gemini", model_id=3),
        ]
        gateway = _gateway({"groq": ProviderError("boom", "groq", 500), "gemini": ANSWERS["gemini"]})
        subject = SubjectContext(kind="brand", url="https://acme.com", name="Acme")

        pairs = await collect_questions(gateway, models, subject, brand_prompt_count)

        assert {provider for _, provider in pairs} == {"gemini"}
        assert gateway.complete.await_count == 2


class TestGenerateForBrand:
    @pytest.mark.asyncio
    async def test_stores_ai_prompts(self, mock_db, make_model, brand):
        mock_db.execute.return_value.scalar.return_value = 4
        with patch("app.services.prompt_service.get_enabled_models", new_callable=AsyncMock) as mock_models:
            mock_models.return_value = [make_model(name="openai")]
            rows = await generate_prompts_for_brand(mock_db, _gateway(), brand, "run-1")

        assert [r.prompt for r in rows] == [
            "What is the best sprint planning tool?",
            "How do teams track velocity?",
        ]
        assert [r.order for r in rows] == [5, 6]
        assert all(r.source == SOURCE_AI and r.ai_provider == "openai" for r in rows)
        assert all(r.status == "suggested" and r.country_code == "US" for r in rows)
        mock_db.add_all.assert_called_once_with(rows)

    @pytest.mark.asyncio
    async def test_falls_back_to_templates(self, mock_db, make_model, brand):
        with patch("app.services.prompt_service.get_enabled_models", new_callable=AsyncMock) as mock_models:
            mock_models.return_value = [make_model(name="openai")]
            rows = await generate_prompts_for_brand(mock_db, _gateway({"openai": "No idea."}), brand, "run-1")

        assert len(rows) == 10
        assert rows[0].prompt == "What are the key features of Acme?"
        assert all(r.source == SOURCE_FALLBACK for r in rows)
        assert [r.order for r in rows] == list(range(1, 11))

    @pytest.mark.asyncio
    async def test_replace_existing_deletes_first(self, mock_db, brand):
        with patch("app.services.prompt_service.get_enabled_models", new_callable=AsyncMock) as mock_models:
            mock_models.return_value = []
            await generate_prompts_for_brand(mock_db, _gateway(), brand, "run-1", replace_existing=True)

        first_stmt = mock_db.execute.await_args_list[0].args[0]
        assert first_stmt.table.name == "brand_prompts"
        assert first_stmt.is_delete


class TestGenerateForPost:
    @pytest.mark.asyncio
    async def test_stores_selected_post_prompts(self, mock_db, make_model):
        gateway = _gateway()
        with patch("app.services.prompt_service.get_enabled_models", new_callable=AsyncMock) as mock_models:
            mock_models.return_value = [make_model(name="gemini")]
            rows = await generate_prompts_for_post(mock_db, gateway, _post(), "run-2")

        assert all(isinstance(r, PostPrompt) and r.is_selected for r in rows)
        assert rows[1].prompt == "Which kanban boards support automation?"
        sent = gateway.complete.call_args.args[1]
        assert "https://acme.com/blog/sprints" in sent

    @pytest.mark.asyncio
    async def test_post_fallback_uses_title(self, mock_db):
        with patch("app.services.prompt_service.get_enabled_models", new_callable=AsyncMock) as mock_models:
            mock_models.return_value = []
            rows = await generate_prompts_for_post(mock_db, _gateway(), _post(), "run-2")

        assert rows[1].prompt == "What are the main points discussed in Sprint planning guide?"
        assert rows[0].ai_provider == SOURCE_FALLBACK


class TestCustomPrompts:
    @pytest.mark.asyncio
    async def test_add_custom_prompt(self, mock_db, brand):
        mock_db.execute.return_value.scalar.return_value = 7
        row = await add_custom_prompt(mock_db, brand, "run-3", "  Is Acme good for agencies?  ")

        assert isinstance(row, BrandPrompt)
        assert row.prompt == "Is Acme good for agencies?"
        assert row.order == 8
        assert row.source == SOURCE_USER
        assert row.status == "active"
        mock_db.add.assert_called_once_with(row)

    @pytest.mark.asyncio
    async def test_add_custom_post_prompt(self, mock_db):
        row = await add_custom_post_prompt(mock_db, _post(), "run-3", "Who wrote the sprint guide?")
        assert row.order == 1
        assert row.ai_provider is None


class TestRatioListing:
    @pytest.mark.asyncio
    async def test_brand_prompts_interleaved(self, mock_db, make_model, brand):
        rows = [
            SimpleNamespace(prompt="What is A?", ai_provider="openai"),
            SimpleNamespace(prompt="What is B?", ai_provider="openai"),
            SimpleNamespace(prompt="Why choose C?", ai_provider="gemini"),
        ]
        mock_db.execute.return_value.scalars.return_value.all.return_value = rows
        with patch("app.services.prompt_service.get_enabled_models", new_callable=AsyncMock) as mock_models:
            mock_models.return_value = [make_model(name="openai"), make_model(name="gemini", model_id=2)]
            selected = await get_brand_prompts_with_ratio(mock_db, brand, limit=2)

        assert [p.prompt for p in selected] == ["What is A?", "Why choose C?"]

    @pytest.mark.asyncio
    async def test_no_enabled_models_lists_nothing(self, mock_db):
        with patch("app.services.prompt_service.get_enabled_models", new_callable=AsyncMock) as mock_models:
            mock_models.return_value = []
            assert await get_post_prompts_with_ratio(mock_db, _post()) == []
        mock_db.execute.assert_not_called()
