"""Celery tasks for model health and competitive-stat snapshots."""

import logging

from sqlalchemy import select

from app.core.config import settings
from app.gateway.gateway import ProviderGateway
from app.models.brand import Brand
from app.notifications.telegram import notify_model_failures
from app.services.model_registry import check_and_disable_models
from app.services.visibility_service import update_competitive_stats
from app.tasks.celery_app import celery_app
from app.tasks.runtime import make_session_factory, new_session_id, run_async

logger = logging.getLogger(__name__)


async def _health_check_async() -> dict:
    session_factory, engine = make_session_factory()
    try:
        async with session_factory() as db:
            tested, failures = await check_and_disable_models(db, ProviderGateway())
            await db.commit()
    finally:
        await engine.dispose()

    notified = False
    if failures:
        notified = await notify_model_failures(failures, settings.telegram_bot_token, settings.telegram_admin_chat_id)

    return {
        "total_tested": tested,
        "failed": len(failures),
        "disabled_models": [check.model for check in failures],
        "notified": notified,
    }


@celery_app.task(name="health_check_models", time_limit=600)
def health_check_models_task():
    """Beat task: probe enabled models, disable failing ones, alert admins."""
    logger.info("Starting AI models health check")
    result = run_async(_health_check_async())
    if result["failed"]:
        logger.warning("Health check disabled %d models: %s", result["failed"], ", ".join(result["disabled_models"]))
    return result


# ---------------------------------------------------------------------------
# Competitive stats
# ---------------------------------------------------------------------------


async def _update_competitive_stats_async(brand_id: int | None = None) -> dict:
    session_factory, engine = make_session_factory()
    session_id = new_session_id("visibility")
    snapshots: dict[int, int] = {}
    try:
        async with session_factory() as db:
            query = select(Brand)
            if brand_id is not None:
                query = query.where(Brand.id == brand_id)
            brands = list((await db.execute(query.order_by(Brand.id))).scalars().all())

            for brand in brands:
                rows = await update_competitive_stats(db, brand, session_id)
                snapshots[brand.id] = len(rows)
            await db.commit()
    finally:
        await engine.dispose()

    return {"session_id": session_id, "brands": len(snapshots), "snapshots": snapshots}


@celery_app.task(
    bind=True,
    name="update_competitive_stats",
    max_retries=2,
    default_retry_delay=120,
    time_limit=600,
)
def update_competitive_stats_task(self, brand_id: int | None = None):
    """Beat task: append a visibility snapshot per brand entity."""
    try:
        result = run_async(_update_competitive_stats_async(brand_id))
        logger.info("Competitive stats updated for %d brands", result["brands"])
        return result
    except Exception as exc:
        logger.error("Competitive stats update failed: %s", exc)
        raise self.retry(exc=exc)
