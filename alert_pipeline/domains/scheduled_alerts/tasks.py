from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import redis
from celery import shared_task
from redis.exceptions import LockError

from ...core.config import settings
from ...core.database import document_store_session
from ...core.interfaces import DocumentStore
from ..followers.resolver import FollowerResolver
from ..notifications.dispatcher import NotificationDispatcher
from ..organization_alerts.publisher import AlertPublisher
from ..organization_alerts.repository import OrganizationAlertRepository
from .repository import ScheduledAlertRepository
from .scheduler import ExecutionScheduler, Pipeline, TickResult


logger = logging.getLogger(__name__)

TICK_LOCK_NAME = "alert_pipeline:scheduled_alerts:tick"


def build_publisher(store: DocumentStore, dispatcher: NotificationDispatcher) -> AlertPublisher:
    return AlertPublisher(
        repository=OrganizationAlertRepository(store),
        resolver=FollowerResolver(store),
        dispatcher=dispatcher,
    )


@asynccontextmanager
async def open_pipeline() -> AsyncIterator[Pipeline]:
    """Store connection and gateway clients for one event loop"""
    async with document_store_session(ensure_indexes=True) as store:
        dispatcher = NotificationDispatcher(store)
        try:
            yield ScheduledAlertRepository(store), build_publisher(store, dispatcher)
        finally:
            await dispatcher.aclose()


# One scheduler per worker process so overlapping ticks in this process are skipped
_scheduler: Optional[ExecutionScheduler] = None


def get_scheduler() -> ExecutionScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = ExecutionScheduler(pipeline_factory=open_pipeline)
    return _scheduler


def tick_lock() -> "redis.lock.Lock":
    """Held for a whole execution tick by whichever worker process runs it"""
    client = redis.from_url(settings.redis_url)
    # Same lifetime as the hard task time limit
    return client.lock(TICK_LOCK_NAME, timeout=int(settings.alerts_tick_timeout_seconds) + 120)


@shared_task(name="alert_pipeline.domains.scheduled_alerts.tasks.execute_scheduled_alerts")
def execute_scheduled_alerts() -> Dict[str, Any]:
    """Run one execution tick over all due scheduled alerts."""
    if not settings.alerts_enabled:
        logger.info("Alerts disabled, skipping execute_scheduled_alerts")
        return {}

    async def _run() -> Dict[str, Any]:
        scheduler = get_scheduler()
        result = await scheduler.run_tick()
        return {
            **result.model_dump(),
            "execution_count": scheduler.status.execution_count,
        }

    lock = tick_lock()
    if not lock.acquire(blocking=False):
        logger.info("Execution tick already running in another worker, skipping")
        return {
            **TickResult(skipped_busy=True).model_dump(),
            "execution_count": get_scheduler().status.execution_count,
        }
    try:
        return asyncio.run(_run())
    finally:
        try:
            lock.release()
        except LockError as e:
            logger.warning(f"Execution tick lock expired before release: {e}")


@shared_task(name="alert_pipeline.domains.scheduled_alerts.tasks.cleanup_expired_scheduled_alerts")
def cleanup_expired_scheduled_alerts() -> int:
    """Deactivate active scheduled alerts past their expiry."""
    if not settings.alerts_enabled:
        logger.info("Alerts disabled, skipping cleanup_expired_scheduled_alerts")
        return 0

    async def _run() -> int:
        return await get_scheduler().cleanup_expired()

    return asyncio.run(_run())


@shared_task(name="alert_pipeline.domains.scheduled_alerts.tasks.reconcile_alert_counts")
def reconcile_alert_counts(organization_id: Optional[str] = None) -> Dict[str, int]:
    """Repair organization alert counters that drifted from the stored alerts."""
    if not settings.alerts_enabled:
        logger.info("Alerts disabled, skipping reconcile_alert_counts")
        return {}

    async def _run() -> Dict[str, int]:
        async with open_pipeline() as (_, publisher):
            return await publisher.reconcile_alert_counts(organization_id)

    return asyncio.run(_run())
