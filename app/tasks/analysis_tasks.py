"""Celery tasks for brand prompt analysis.

One task analyzes one BrandPrompt; a daily dispatcher fans out over the
active prompts. Failures are retried by Celery (3 attempts in total) and
the last failure is stamped on the prompt.
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from app.core.metrics import ANALYSIS_RUNS
from app.gateway.vendor_adapters import ProviderConfigError
from app.models.brand_prompt import BrandPrompt
from app.services.analysis_service import BrandPromptAnalyzer, apply_outcome, load_brand, record_failure
from app.services.model_registry import NoEnabledModelError
from app.services.visibility_service import extract_and_log_mentions
from app.tasks.celery_app import celery_app
from app.tasks.runtime import make_session_factory, new_session_id, run_async, task_context

logger = logging.getLogger(__name__)


async def _analyze_brand_prompt_async(
    brand_prompt_id: int,
    session_id: str | None = None,
    force_regenerate: bool = False,
    preferred_model: str | None = None,
    final_attempt: bool = False,
) -> dict:
    log_extra = {"brand_prompt_id": brand_prompt_id, "session_id": session_id}

    async with task_context() as ctx:
        async with ctx.session_factory() as db:
            brand_prompt = await db.get(BrandPrompt, brand_prompt_id)
            if brand_prompt is None:
                logger.warning("Brand prompt %d not found", brand_prompt_id, extra=log_extra)
                return {"status": "not_found", "brand_prompt_id": brand_prompt_id}

            if brand_prompt.is_analyzed and not force_regenerate:
                logger.info("Brand prompt %d already analyzed, skipping", brand_prompt_id, extra=log_extra)
                ANALYSIS_RUNS.labels(outcome="skipped").inc()
                return {"status": "skipped", "brand_prompt_id": brand_prompt_id}

            brand = await load_brand(db, brand_prompt.brand_id)
            if brand is None:
                logger.warning("Brand %d for prompt %d not found", brand_prompt.brand_id, brand_prompt_id, extra=log_extra)
                return {"status": "not_found", "brand_prompt_id": brand_prompt_id}

            analyzer = BrandPromptAnalyzer(db, ctx.gateway, ctx.selector)
            try:
                outcome = await analyzer.analyze_prompt(brand_prompt, brand, preferred_model, session_id)
            except (ProviderConfigError, NoEnabledModelError) as e:
                # Retrying cannot fix configuration
                await db.rollback()
                await record_failure(db, brand_prompt_id, str(e))
                await db.commit()
                ANALYSIS_RUNS.labels(outcome="failed").inc()
                logger.error("Analysis of brand prompt %d failed: %s", brand_prompt_id, e, extra=log_extra)
                return {"status": "failed", "brand_prompt_id": brand_prompt_id, "error": str(e)}
            except Exception as e:
                await db.rollback()
                if final_attempt:
                    await record_failure(db, brand_prompt_id, str(e))
                    await db.commit()
                    ANALYSIS_RUNS.labels(outcome="failed").inc()
                raise

            apply_outcome(brand_prompt, outcome, session_id)
            await db.commit()

            mentions = 0
            try:
                mentions = len(await extract_and_log_mentions(db, brand, brand_prompt, session_id))
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error("Mention logging failed for brand prompt %d: %s", brand_prompt_id, e, extra=log_extra)

            ANALYSIS_RUNS.labels(outcome="success").inc()
            return {
                "status": "completed",
                "brand_prompt_id": brand_prompt_id,
                "model": outcome.model_name,
                "resources": len(outcome.resources),
                "mentions": mentions,
                "sentiment": outcome.sentiment_score,
                "position": outcome.analysis.position,
            }


@celery_app.task(
    bind=True,
    name="analyze_brand_prompt",
    max_retries=2,
    default_retry_delay=60,
    time_limit=600,
)
def analyze_brand_prompt_task(
    self,
    brand_prompt_id: int,
    session_id: str | None = None,
    force_regenerate: bool = False,
    preferred_model: str | None = None,
):
    """Celery task: answer-and-analyze one brand prompt."""
    final_attempt = self.request.retries >= self.max_retries
    logger.info(
        "Starting analysis for brand prompt %d (attempt %d)",
        brand_prompt_id,
        self.request.retries + 1,
        extra={"brand_prompt_id": brand_prompt_id, "task_id": self.request.id},
    )
    try:
        result = run_async(
            _analyze_brand_prompt_async(brand_prompt_id, session_id, force_regenerate, preferred_model, final_attempt)
        )
        logger.info("Analysis done for brand prompt %d: %s", brand_prompt_id, result.get("status"))
        return result
    except Exception as exc:
        logger.error("Analysis failed for brand prompt %d: %s", brand_prompt_id, exc)
        raise self.retry(exc=exc)


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


async def _find_prompts_to_analyze(brand_id: int | None, force_regenerate: bool) -> list[int]:
    session_factory, engine = make_session_factory()
    try:
        async with session_factory() as db:
            query = select(BrandPrompt).where(
                BrandPrompt.is_active.is_(True),
                BrandPrompt.status != "inactive",
            )
            if brand_id is not None:
                query = query.where(BrandPrompt.brand_id == brand_id)
            result = await db.execute(query.order_by(BrandPrompt.brand_id, BrandPrompt.order))
            return [p.id for p in result.scalars().all() if force_regenerate or not p.is_analyzed]
    finally:
        await engine.dispose()


@celery_app.task(name="analyze_brand_prompts")
def analyze_brand_prompts_task(brand_id: int | None = None, force_regenerate: bool = False):
    """Beat dispatcher: queue one analysis task per active prompt."""
    prompt_ids = run_async(_find_prompts_to_analyze(brand_id, force_regenerate))
    if not prompt_ids:
        return {"dispatched": 0}

    session_id = new_session_id("analysis")
    for prompt_id in prompt_ids:
        analyze_brand_prompt_task.delay(prompt_id, session_id, force_regenerate)

    logger.info("Dispatched %d brand prompt analyses (session %s)", len(prompt_ids), session_id)
    return {"dispatched": len(prompt_ids), "session_id": session_id}
