"""Celery task for post citation checks."""

import logging

from app.models.post import Post
from app.services.citation_check_service import CitationCheckService
from app.tasks.celery_app import celery_app
from app.tasks.runtime import run_async, task_context

logger = logging.getLogger(__name__)


async def _run_citation_check_async(post_id: int) -> dict:
    async with task_context() as ctx:
        async with ctx.session_factory() as db:
            post = await db.get(Post, post_id)
            if post is None:
                return {"success": False, "message": f"Post {post_id} not found", "results": {}}
            result = await CitationCheckService(db, ctx.gateway).run_citation_check(post)
            await db.commit()
            return result


@celery_app.task(
    bind=True,
    name="run_citation_check",
    max_retries=2,
    default_retry_delay=60,
    time_limit=300,
)
def run_citation_check_task(self, post_id: int):
    """Celery task: check whether a post is cited for its selected prompts."""
    logger.info("Starting citation check for post %d", post_id)
    try:
        result = run_async(_run_citation_check_async(post_id))
        logger.info("Citation check done for post %d: success=%s", post_id, result.get("success"))
        return result
    except Exception as exc:
        logger.error("Citation check failed for post %d: %s", post_id, exc)
        raise self.retry(exc=exc)
