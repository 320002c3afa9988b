from __future__ import annotations

# Ensure all models are registered before any task runs
# isort: off
import spendlens.models  # noqa: F401
# isort: on

from functools import lru_cache

from spendlens.bootstrap import Services, build_services
from spendlens.core.logging import bind_context, get_logger, log_event, log_stage, reset_context
from spendlens.worker.celery_app import celery_app

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def _worker_services() -> Services:
    return build_services()


@celery_app.task(name="refresh_insights", bind=True)
def refresh_insights_task(self) -> bool:
    """Periodic tick of the insights scheduler; eligibility decides whether it runs."""
    token = bind_context(celery_task_id=getattr(self.request, "id", None))
    try:
        log_event(logger, "celery.task.start", task_name="refresh_insights")
        with log_stage(logger, "celery.task", task_name="refresh_insights") as outcome:
            ran = _worker_services().scheduler.tick()
            outcome["ran"] = ran
        return ran
    finally:
        reset_context(token)
