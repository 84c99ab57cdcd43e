"""
Celery worker and beat schedule for the due-date sweeps, notification
retention and completion reconciliation.
"""
from celery import Celery
from celery.signals import setup_logging
import logging
from .config import settings
from .database import SessionLocal
from .logging_config import configure_logging
from .services.automation import reconcile_completions, sweep_due_soon_tasks, sweep_overdue_tasks
from .services.notifications import purge_expired_notifications as purge_notifications

logger = logging.getLogger(__name__)

celery_app = Celery(
    "taskflow",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
)


@setup_logging.connect
def _configure_worker_logging(**_kwargs):
    configure_logging()


def _run_job(name: str, job):
    """Run ``job(db)`` in its own session; errors are logged and re-raised."""
    db = SessionLocal()
    try:
        result = job(db)
        logger.info("job.finished name=%s result=%s", name, result)
        return result
    except Exception:
        db.rollback()
        logger.exception("job.failed name=%s", name)
        raise
    finally:
        db.close()


@celery_app.task(name="sweep_overdue_tasks")
def sweep_overdue_tasks_job():
    """Notify assignees of overdue open tasks."""
    return _run_job("sweep_overdue_tasks", sweep_overdue_tasks)


@celery_app.task(name="sweep_due_soon_tasks")
def sweep_due_soon_tasks_job():
    """Notify assignees of open tasks due within the configured window."""
    return _run_job("sweep_due_soon_tasks", sweep_due_soon_tasks)


@celery_app.task(name="purge_expired_notifications")
def purge_expired_notifications():
    """Delete notifications past the retention window."""
    deleted = _run_job("purge_expired_notifications", purge_notifications)
    return {"deleted": deleted}


@celery_app.task(name="reconcile_task_completions")
def reconcile_task_completions():
    """Stamp tasks whose post-commit completion step did not run."""
    return _run_job("reconcile_task_completions", reconcile_completions)


# Schedule periodic processing
celery_app.conf.beat_schedule = {
    'sweep-overdue-tasks': {
        'task': 'sweep_overdue_tasks',
        'schedule': settings.OVERDUE_SWEEP_MINUTES * 60.0,
    },
    'sweep-due-soon-tasks': {
        'task': 'sweep_due_soon_tasks',
        'schedule': settings.DUE_SOON_SWEEP_MINUTES * 60.0,
    },
    'purge-expired-notifications': {
        'task': 'purge_expired_notifications',
        'schedule': settings.RETENTION_PURGE_HOURS * 3600.0,
    },
    'reconcile-task-completions': {
        'task': 'reconcile_task_completions',
        'schedule': settings.OVERDUE_SWEEP_MINUTES * 60.0,
    },
}
