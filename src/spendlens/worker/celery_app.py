from __future__ import annotations

from celery import Celery

from spendlens.core.config import settings


def make_celery() -> Celery:
    app = Celery("spendlens", broker=settings.redis_url, backend=settings.redis_url)
    app.conf.update(
        task_always_eager=settings.environment == "dev",
        task_eager_propagates=True,
        task_track_started=True,
        beat_schedule={
            "refresh-insights-hourly": {
                "task": "refresh_insights",
                "schedule": 60 * 60,
            }
        },
    )
    app.autodiscover_tasks(["spendlens.worker.tasks"])
    return app


celery_app = make_celery()
