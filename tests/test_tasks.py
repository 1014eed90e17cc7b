"""Tests for the Celery task entry points and their async bodies."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.analysis.types import BrandAnalysis, ResourceEntry, SentimentLabel
from app.gateway.gateway import ConnectionCheck
from app.gateway.vendor_adapters import ProviderError
from app.models.brand_prompt import BrandPrompt
from app.models.post import Post
from app.services.analysis_service import AnalysisOutcome
from app.services.model_registry import NoEnabledModelError
from app.tasks.analysis_tasks import (
    _analyze_brand_prompt_async,
    analyze_brand_prompt_task,
    analyze_brand_prompts_task,
)
from app.tasks.citation_tasks import _run_citation_check_async, run_citation_check_task
from app.tasks.health_tasks import _health_check_async, _update_competitive_stats_async
from app.tasks.prompt_tasks import _fetch_competitors_async, _generate_prompts_async, generate_prompts_task


def _session_cm(db):
    cm = MagicMock()
    cm.__aenter__ = AsyncMock(return_value=db)
    cm.__aexit__ = AsyncMock(return_value=None)
    return cm


def _fake_task_context(db):
    ctx = SimpleNamespace(
        session_factory=MagicMock(return_value=_session_cm(db)),
        gateway=MagicMock(),
        selector=MagicMock(),
    )

    @asynccontextmanager
    async def _context():
        yield ctx

    return _context


def _prompt(**overrides) -> BrandPrompt:
    values = {"id": 5, "brand_id": 10, "prompt": "Best PM tool?", "session_id": "old"}
    values.update(overrides)
    return BrandPrompt(**values)


def _outcome() -> AnalysisOutcome:
    return AnalysisOutcome(
        ai_response="<p>Acme is great</p>",
        resources=[ResourceEntry(url="https://acme.com", domain="acme.com")],
        analysis=BrandAnalysis(SentimentLabel.POSITIVE, 60, {}),
        ai_model_id=1,
        model_name="openai",
    )


# ==========================================================================
# Test: analyze_brand_prompt async body
# ==========================================================================


class TestAnalyzeBrandPromptBody:
    @pytest.fixture
    def patched(self, mock_db, brand):
        analyzer = MagicMock()
        analyzer.analyze_prompt = AsyncMock(return_value=_outcome())
        with (
            patch("app.tasks.analysis_tasks.task_context", _fake_task_context(mock_db)),
            patch("app.tasks.analysis_tasks.load_brand", new_callable=AsyncMock, return_value=brand),
            patch("app.tasks.analysis_tasks.BrandPromptAnalyzer", return_value=analyzer),
            patch("app.tasks.analysis_tasks.record_failure", new_callable=AsyncMock) as record,
            patch("app.tasks.analysis_tasks.extract_and_log_mentions", new_callable=AsyncMock) as mentions,
        ):
            mentions.return_value = ["brand", "competitor"]
            yield SimpleNamespace(db=mock_db, analyzer=analyzer, record=record, mentions=mentions)

    @pytest.mark.asyncio
    async def test_success(self, patched):
        prompt = _prompt()
        patched.db.get.return_value = prompt

        result = await _analyze_brand_prompt_async(5, "run-1")

        assert result == {
            "status": "completed",
            "brand_prompt_id": 5,
            "model": "openai",
            "resources": 1,
            "mentions": 2,
            "sentiment": 75,
            "position": 60,
        }
        assert prompt.ai_response == "<p>Acme is great</p>"
        assert prompt.session_id == "run-1"
        assert patched.db.commit.await_count == 2
        patched.record.assert_not_called()

    @pytest.mark.asyncio
    async def test_not_found(self, patched):
        patched.db.get.return_value = None
        assert (await _analyze_brand_prompt_async(99))["status"] == "not_found"

    @pytest.mark.asyncio
    async def test_already_analyzed_skipped(self, patched):
        patched.db.get.return_value = _prompt(
            ai_response="done", resources=[{"url": "https://a.io"}], analysis_completed_at=datetime.now(timezone.utc)
        )
        assert (await _analyze_brand_prompt_async(5))["status"] == "skipped"
        patched.analyzer.analyze_prompt.assert_not_called()

    @pytest.mark.asyncio
    async def test_analyzed_without_resources_skipped(self, patched):
        patched.db.get.return_value = _prompt(
            ai_response="<p>No links here</p>", resources=[], analysis_completed_at=datetime.now(timezone.utc)
        )
        assert (await _analyze_brand_prompt_async(5))["status"] == "skipped"
        patched.analyzer.analyze_prompt.assert_not_called()

    def test_never_analyzed_prompt_is_pending(self):
        assert _prompt().is_analyzed is False
        assert _prompt(ai_response="<p>x</p>", resources=None, analysis_completed_at=datetime.now(timezone.utc)).is_analyzed is False

    @pytest.mark.asyncio
    async def test_force_regenerate_reanalyzes(self, patched):
        patched.db.get.return_value = _prompt(
            ai_response="done", resources=[{"url": "https://a.io"}], analysis_completed_at=datetime.now(timezone.utc)
        )
        result = await _analyze_brand_prompt_async(5, force_regenerate=True)
        assert result["status"] == "completed"

    @pytest.mark.asyncio
    async def test_configuration_failure_recorded_without_raising(self, patched):
        patched.db.get.return_value = _prompt()
        patched.analyzer.analyze_prompt.side_effect = NoEnabledModelError("No enabled AI model found")

        result = await _analyze_brand_prompt_async(5)

        assert result["status"] == "failed"
        patched.db.rollback.assert_awaited()
        patched.record.assert_awaited_once_with(patched.db, 5, "No enabled AI model found")

    @pytest.mark.asyncio
    async def test_provider_failure_raises_for_retry(self, patched):
        patched.db.get.return_value = _prompt()
        patched.analyzer.analyze_prompt.side_effect = ProviderError("OpenAI API error: 503 - down", "openai", 503)

        with pytest.raises(ProviderError):
            await _analyze_brand_prompt_async(5)
        patched.record.assert_not_called()

    @pytest.mark.asyncio
    async def test_final_attempt_records_failure(self, patched):
        prompt = _prompt(ai_response="previous answer")
        patched.db.get.return_value = prompt
        patched.analyzer.analyze_prompt.side_effect = ProviderError("OpenAI API timeout after 60s", "openai")

        with pytest.raises(ProviderError):
            await _analyze_brand_prompt_async(5, final_attempt=True)

        patched.record.assert_awaited_once_with(patched.db, 5, "OpenAI API timeout after 60s")
        assert prompt.ai_response == "previous answer"


# ==========================================================================
# Test: task wrappers
# ==========================================================================


class TestAnalyzeBrandPromptTask:
    def test_passes_arguments(self):
        with (
            patch("app.tasks.analysis_tasks._analyze_brand_prompt_async", MagicMock(return_value="coro")) as body,
            patch("app.tasks.analysis_tasks.run_async", return_value={"status": "completed"}) as run,
        ):
            result = analyze_brand_prompt_task(5, "run-1", False, "gemini")

        assert result == {"status": "completed"}
        body.assert_called_once_with(5, "run-1", False, "gemini", False)
        run.assert_called_once_with("coro")

    def test_no_retries_left_is_final_attempt(self):
        with (
            patch.object(analyze_brand_prompt_task, "max_retries", 0),
            patch("app.tasks.analysis_tasks._analyze_brand_prompt_async", MagicMock()) as body,
            patch("app.tasks.analysis_tasks.run_async", return_value={"status": "completed"}),
        ):
            analyze_brand_prompt_task(5)

        assert body.call_args.args[-1] is True

    def test_failure_goes_through_retry(self):
        error = ProviderError("OpenAI API error: 500 - boom", "openai", 500)
        with (
            patch("app.tasks.analysis_tasks._analyze_brand_prompt_async", MagicMock()),
            patch("app.tasks.analysis_tasks.run_async", side_effect=error),
        ):
            # a directly-called task re-raises the original exception from retry()
            with pytest.raises(ProviderError):
                analyze_brand_prompt_task(5)


class TestAnalyzeBrandPromptsDispatcher:
    def test_dispatches_one_task_per_prompt(self):
        with (
            patch("app.tasks.analysis_tasks._find_prompts_to_analyze", MagicMock()),
            patch("app.tasks.analysis_tasks.run_async", return_value=[1, 2, 3]),
            patch.object(analyze_brand_prompt_task, "delay") as delay,
        ):
            result = analyze_brand_prompts_task(brand_id=10)

        assert result["dispatched"] == 3
        assert result["session_id"].startswith("analysis_")
        assert [c.args[0] for c in delay.call_args_list] == [1, 2, 3]
        assert {c.args[1] for c in delay.call_args_list} == {result["session_id"]}

    def test_nothing_to_dispatch(self):
        with (
            patch("app.tasks.analysis_tasks._find_prompts_to_analyze", MagicMock()),
            patch("app.tasks.analysis_tasks.run_async", return_value=[]),
            patch.object(analyze_brand_prompt_task, "delay") as delay,
        ):
            assert analyze_brand_prompts_task() == {"dispatched": 0}
        delay.assert_not_called()


# ==========================================================================
# Test: prompt generation
# ==========================================================================


class TestGeneratePrompts:
    @pytest.mark.asyncio
    async def test_unsupported_target(self):
        with pytest.raises(ValueError, match="Unsupported prompt target type: page"):
            await _generate_prompts_async("page", 1, "s1")

    def test_value_error_not_retried(self):
        with (
            patch("app.tasks.prompt_tasks._generate_prompts_async", MagicMock()),
            patch("app.tasks.prompt_tasks.run_async", side_effect=ValueError("Unsupported prompt target type: page")),
            patch.object(generate_prompts_task, "retry") as retry,
        ):
            with pytest.raises(ValueError):
                generate_prompts_task("page", 1, "s1")
        retry.assert_not_called()

    @pytest.mark.asyncio
    async def test_brand_generation(self, mock_db, brand):
        mock_db.get.return_value = brand
        rows = [SimpleNamespace(source="ai_generated")] * 3
        with (
            patch("app.tasks.prompt_tasks.task_context", _fake_task_context(mock_db)),
            patch("app.tasks.prompt_tasks.generate_prompts_for_brand", new_callable=AsyncMock, return_value=rows),
        ):
            result = await _generate_prompts_async("brand", 10, "s1")

        assert result["prompts_generated"] == 3
        assert result["source"] == "ai_generated"
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_post(self, mock_db):
        mock_db.get.return_value = None
        with patch("app.tasks.prompt_tasks.task_context", _fake_task_context(mock_db)):
            result = await _generate_prompts_async("post", 3, "s1")
        assert result["status"] == "not_found"


# ==========================================================================
# Test: health check & competitive stats
# ==========================================================================


class TestHealthTasks:
    @pytest.mark.asyncio
    async def test_health_check_notifies_on_failures(self, mock_db):
        engine = MagicMock()
        engine.dispose = AsyncMock()
        failure = ConnectionCheck(False, "Groq", "Groq request failed.", error="Groq API error: 401", error_type="api_error")

        with (
            patch("app.tasks.health_tasks.make_session_factory", return_value=(MagicMock(return_value=_session_cm(mock_db)), engine)),
            patch("app.tasks.health_tasks.check_and_disable_models", new_callable=AsyncMock, return_value=(3, [failure])),
            patch("app.tasks.health_tasks.notify_model_failures", new_callable=AsyncMock, return_value=True) as notify,
        ):
            result = await _health_check_async()

        assert result == {"total_tested": 3, "failed": 1, "disabled_models": ["Groq"], "notified": True}
        notify.assert_awaited_once()
        mock_db.commit.assert_awaited_once()
        engine.dispose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_health_check_all_good(self, mock_db):
        engine = MagicMock()
        engine.dispose = AsyncMock()
        with (
            patch("app.tasks.health_tasks.make_session_factory", return_value=(MagicMock(return_value=_session_cm(mock_db)), engine)),
            patch("app.tasks.health_tasks.check_and_disable_models", new_callable=AsyncMock, return_value=(2, [])),
            patch("app.tasks.health_tasks.notify_model_failures", new_callable=AsyncMock) as notify,
        ):
            result = await _health_check_async()

        assert result["failed"] == 0
        assert result["notified"] is False
        notify.assert_not_called()

    @pytest.mark.asyncio
    async def test_competitive_stats_per_brand(self, mock_db, brand):
        engine = MagicMock()
        engine.dispose = AsyncMock()
        mock_db.execute.return_value.scalars.return_value.all.return_value = [brand]

        with (
            patch("app.tasks.health_tasks.make_session_factory", return_value=(MagicMock(return_value=_session_cm(mock_db)), engine)),
            patch("app.tasks.health_tasks.update_competitive_stats", new_callable=AsyncMock, return_value=[1, 2]) as update,
        ):
            result = await _update_competitive_stats_async()

        assert result["brands"] == 1
        assert result["snapshots"] == {10: 2}
        assert update.await_args.args[2] == result["session_id"]


# ==========================================================================
# Test: citation check & competitor discovery
# ==========================================================================


class TestCitationCheckTask:
    @pytest.mark.asyncio
    async def test_runs_service_and_commits(self, mock_db):
        post = Post(id=3, brand_id=10, url="https://acme.com/blog/sprints")
        mock_db.get.return_value = post
        summary = {"success": True, "message": "Checked 2 prompts", "results": {"openai": {"checked": 2}}}

        with (
            patch("app.tasks.citation_tasks.task_context", _fake_task_context(mock_db)),
            patch("app.tasks.citation_tasks.CitationCheckService") as service_cls,
        ):
            service_cls.return_value.run_citation_check = AsyncMock(return_value=summary)
            result = await _run_citation_check_async(3)

        assert result == summary
        service_cls.return_value.run_citation_check.assert_awaited_once_with(post)
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_post(self, mock_db):
        mock_db.get.return_value = None
        with patch("app.tasks.citation_tasks.task_context", _fake_task_context(mock_db)):
            result = await _run_citation_check_async(99)

        assert result["success"] is False
        assert result["message"] == "Post 99 not found"
        mock_db.commit.assert_not_called()

    def test_failure_is_retried(self):
        boom = RuntimeError("db down")
        with (
            patch("app.tasks.citation_tasks._run_citation_check_async", MagicMock()),
            patch("app.tasks.citation_tasks.run_async", side_effect=boom),
        ):
            with pytest.raises(RuntimeError, match="db down"):
                run_citation_check_task(3)


class TestFetchCompetitorsTask:
    @pytest.mark.asyncio
    async def test_counts_suggestions(self, mock_db, brand):
        mock_db.get.return_value = brand
        with (
            patch("app.tasks.prompt_tasks.task_context", _fake_task_context(mock_db)),
            patch("app.tasks.prompt_tasks.fetch_competitors", new_callable=AsyncMock, return_value=["a", "b"]),
        ):
            result = await _fetch_competitors_async(10)

        assert result == {"status": "completed", "brand_id": 10, "suggested": 2}
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_brand(self, mock_db):
        mock_db.get.return_value = None
        with patch("app.tasks.prompt_tasks.task_context", _fake_task_context(mock_db)):
            result = await _fetch_competitors_async(10)
        assert result["status"] == "not_found"
