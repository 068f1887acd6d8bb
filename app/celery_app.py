from datetime import timedelta

from celery import Celery

from app.config import Settings, settings


def build_beat_schedule(s: Settings) -> dict:
    if not s.reconcile_enabled:
        return {}
    return {
        "reconcile_premium": {
            "task": "app.tasks.billing.reconcile_premium",
            "schedule": timedelta(seconds=max(s.reconcile_interval_seconds, 60)),
        }
    }


celery_app = Celery(
    "premium_billing",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["app.tasks.billing"],
)
celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    beat_schedule=build_beat_schedule(settings),
)
