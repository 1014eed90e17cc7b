from celery import Celery
from celery.schedules import crontab

from app.core.config import settings
from app.core.logging import setup_logging
from app.core.sentry import init_sentry

setup_logging()
init_sentry(component="worker")

celery_app = Celery(
    "brand_visibility",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    worker_hijack_root_logger=False,
    broker_connection_retry_on_startup=True,
)

# Celery Beat schedule: daily maintenance of models, snapshots and analyses.
celery_app.conf.beat_schedule = {
    "health-check-models": {
        "task": "health_check_models",
        "schedule": crontab(hour=1, minute=0),  # daily at 01:00
    },
    "update-competitive-stats": {
        "task": "update_competitive_stats",
        "schedule": crontab(hour=2, minute=0),  # daily at 02:00
    },
    "analyze-brand-prompts": {
        "task": "analyze_brand_prompts",
        "schedule": crontab(hour=3, minute=0),  # daily at 03:00
    },
}

# Auto-discover tasks from tasks modules
celery_app.autodiscover_tasks(["app.tasks"])

# Explicit include as fallback for autodiscover (needed for CLI worker startup)
celery_app.conf.include = [
    "app.tasks.analysis_tasks",
    "app.tasks.citation_tasks",
    "app.tasks.health_tasks",
    "app.tasks.prompt_tasks",
]
