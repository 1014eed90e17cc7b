"""Celery tasks for prompt generation and competitor suggestions."""

import logging

from app.models.brand import Brand
from app.models.post import Post
from app.services.competitor_discovery import fetch_competitors
from app.services.prompt_service import generate_prompts_for_brand, generate_prompts_for_post
from app.tasks.celery_app import celery_app
from app.tasks.runtime import new_session_id, run_async, task_context

logger = logging.getLogger(__name__)

TARGET_BRAND = "brand"
TARGET_POST = "post"


async def _generate_prompts_async(
    target_type: str,
    target_id: int,
    session_id: str,
    description: str = "",
    replace_existing: bool = False,
) -> dict:
    if target_type not in (TARGET_BRAND, TARGET_POST):
        raise ValueError(f"Unsupported prompt target type: {target_type}")

    async with task_context() as ctx:
        async with ctx.session_factory() as db:
            if target_type == TARGET_BRAND:
                brand = await db.get(Brand, target_id)
                if brand is None:
                    logger.warning("Brand %d not found", target_id)
                    return {"status": "not_found", "target_type": target_type, "target_id": target_id}
                prompts = await generate_prompts_for_brand(
                    db, ctx.gateway, brand, session_id, description, replace_existing
                )
            else:
                post = await db.get(Post, target_id)
                if post is None:
                    logger.warning("Post %d not found", target_id)
                    return {"status": "not_found", "target_type": target_type, "target_id": target_id}
                prompts = await generate_prompts_for_post(
                    db, ctx.gateway, post, session_id, description, replace_existing
                )
            await db.commit()

    return {
        "status": "completed",
        "target_type": target_type,
        "target_id": target_id,
        "session_id": session_id,
        "prompts_generated": len(prompts),
        "source": prompts[0].source if prompts else None,
    }


@celery_app.task(
    bind=True,
    name="generate_prompts",
    max_retries=2,
    default_retry_delay=30,
    time_limit=300,
)
def generate_prompts_task(
    self,
    target_type: str,
    target_id: int,
    session_id: str | None = None,
    description: str = "",
    replace_existing: bool = False,
):
    """Celery task: generate candidate questions for a brand or a post."""
    session_id = session_id or new_session_id("prompts")
    logger.info(
        "Starting prompt generation for %s %d (replace_existing=%s)",
        target_type,
        target_id,
        replace_existing,
        extra={"session_id": session_id, "task_id": self.request.id},
    )
    try:
        result = run_async(_generate_prompts_async(target_type, target_id, session_id, description, replace_existing))
        logger.info("Prompt generation done for %s %d: %s", target_type, target_id, result.get("prompts_generated"))
        return result
    except ValueError:
        raise
    except Exception as exc:
        logger.error("Prompt generation failed for %s %d: %s", target_type, target_id, exc)
        raise self.retry(exc=exc)


# ---------------------------------------------------------------------------
# Competitor suggestions
# ---------------------------------------------------------------------------


async def _fetch_competitors_async(brand_id: int) -> dict:
    async with task_context() as ctx:
        async with ctx.session_factory() as db:
            brand = await db.get(Brand, brand_id)
            if brand is None:
                return {"status": "not_found", "brand_id": brand_id}
            suggestions = await fetch_competitors(db, ctx.gateway, brand)
            await db.commit()
    return {"status": "completed", "brand_id": brand_id, "suggested": len(suggestions)}


@celery_app.task(
    bind=True,
    name="fetch_competitors",
    max_retries=2,
    default_retry_delay=60,
    time_limit=300,
)
def fetch_competitors_task(self, brand_id: int):
    """Celery task: ask an LLM for competitor suggestions for a brand."""
    logger.info("FetchCompetitors started for brand %d", brand_id, extra={"brand_id": brand_id})
    try:
        return run_async(_fetch_competitors_async(brand_id))
    except Exception as exc:
        logger.error("FetchCompetitors failed for brand %d: %s", brand_id, exc)
        raise self.retry(exc=exc)
