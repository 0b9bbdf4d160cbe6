"""
Celery configuration for the alert pipeline.

Beat drives the execution scheduler: a periodic execution tick, a slower
expiry sweep and a daily counter reconciliation. Workers run one immediate
tick when they come up.
"""

from typing import List
from datetime import timedelta
import logging

from celery import Celery
from celery.signals import task_prerun, task_postrun, task_failure, worker_ready

from .config import settings
from .logging_config import setup_logging
from .metrics import start_metrics_server

logger = logging.getLogger(__name__)

TASKS_MODULE = "alert_pipeline.domains.scheduled_alerts.tasks"
EXECUTE_TASK = f"{TASKS_MODULE}.execute_scheduled_alerts"
CLEANUP_TASK = f"{TASKS_MODULE}.cleanup_expired_scheduled_alerts"
RECONCILE_TASK = f"{TASKS_MODULE}.reconcile_alert_counts"

ALERTS_QUEUE = "scheduled_alerts"


class CeleryConfig:
    """Celery configuration class."""

    # Task execution settings; a tick stops taking new alerts at its budget,
    # the limits only catch a tick stuck inside one alert
    task_soft_time_limit = int(settings.alerts_tick_timeout_seconds) + 60
    task_time_limit = int(settings.alerts_tick_timeout_seconds) + 120
    task_acks_late = True
    task_reject_on_worker_lost = True
    task_track_started = True

    # Serialization settings
    task_serializer = "json"
    accept_content = ["json"]
    result_serializer = "json"

    # Timezone settings
    timezone = settings.alerts_timezone
    enable_utc = True

    # Result backend settings
    result_expires = 60 * 60 * 24  # 24 hours

    # Worker settings
    worker_prefetch_multiplier = 1
    worker_max_tasks_per_child = 1000
    worker_hijack_root_logger = False
    worker_log_color = False

    # Connection settings
    broker_connection_retry_on_startup = True
    broker_connection_max_retries = 100

    # Task routing
    task_routes = {
        f"{TASKS_MODULE}.*": {"queue": ALERTS_QUEUE},
    }
    task_default_queue = "default"

    beat_schedule = {
        "execute-scheduled-alerts": {
            "task": EXECUTE_TASK,
            "schedule": timedelta(seconds=settings.alerts_tick_interval_seconds),
            "options": {"queue": ALERTS_QUEUE, "expires": settings.alerts_tick_interval_seconds},
        },
        "cleanup-expired-scheduled-alerts": {
            "task": CLEANUP_TASK,
            "schedule": timedelta(seconds=settings.alerts_cleanup_interval_seconds),
            "options": {"queue": ALERTS_QUEUE},
        },
        "reconcile-alert-counts": {
            "task": RECONCILE_TASK,
            "schedule": timedelta(days=1),
            "options": {"queue": ALERTS_QUEUE},
        },
    }

    @classmethod
    def get_broker_url(cls) -> str:
        return settings.redis_url

    @classmethod
    def get_result_backend_url(cls) -> str:
        return cls.get_broker_url()


def create_celery_app() -> Celery:
    """
    Create and configure the Celery application.

    Returns:
        Configured Celery application instance
    """
    setup_logging()

    includes: List[str] = [TASKS_MODULE]

    app = Celery(
        "alert_pipeline",
        broker=CeleryConfig.get_broker_url(),
        backend=CeleryConfig.get_result_backend_url(),
        include=includes,
    )
    app.config_from_object(CeleryConfig)

    setup_signal_handlers(app)

    logger.info("Celery application created and configured")
    return app


def setup_signal_handlers(app: Celery) -> None:
    """Set up Celery signal handlers for logging and the startup tick."""

    @task_prerun.connect(weak=False)
    def task_prerun_handler(sender=None, task_id=None, task=None, args=None, kwargs=None, **kwds):
        logger.info(f"Task {task.name} [{task_id}] started")

    @task_postrun.connect(weak=False)
    def task_postrun_handler(sender=None, task_id=None, task=None, retval=None, state=None, **kwds):
        logger.info(f"Task {task.name} [{task_id}] completed with state: {state}")

    @task_failure.connect(weak=False)
    def task_failure_handler(sender=None, task_id=None, exception=None, **kwds):
        logger.error(f"Task {sender.name} [{task_id}] failed: {exception}")

    @worker_ready.connect(weak=False)
    def worker_ready_handler(sender=None, **kwds):
        start_metrics_server(settings.metrics_port)
        if not settings.alerts_enabled:
            logger.info("Alerts disabled, skipping startup execution tick")
            return
        app.send_task(EXECUTE_TASK, queue=ALERTS_QUEUE)
        logger.info("Queued startup execution tick")


celery_app = create_celery_app()
