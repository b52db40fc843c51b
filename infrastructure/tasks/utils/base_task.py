"""Base class for payment jobs: task-scoped log context and lifecycle logging."""
from __future__ import annotations

import structlog
from celery import Task

from core.logging_config import get_logger

logger = get_logger(__name__)


class BaseTask(Task):
    """Binds task_id/task_name into structlog context for the duration of a run.

    Arguments are not logged; they can carry provider transaction ids only,
    which the tasks log themselves where useful.
    """

    def __call__(self, *args, **kwargs):
        structlog.contextvars.bind_contextvars(task_id=self.request.id, task_name=self.name)
        try:
            return super().__call__(*args, **kwargs)
        finally:
            structlog.contextvars.unbind_contextvars("task_id", "task_name")

    def on_retry(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.warning(
            "celery_task_retry",
            task_id=task_id,
            task_name=self.name,
            retries=self.request.retries,
            error=str(exc),
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)

    def on_failure(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.error(
            "celery_task_failure",
            task_id=task_id,
            task_name=self.name,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):  # type: ignore[override]
        logger.info("celery_task_success", task_id=task_id, task_name=self.name)
        super().on_success(retval, task_id, args, kwargs)
