"""
Execution scheduler for scheduled alerts.

One tick fetches due alerts (oldest first), publishes each one, then either
advances a recurring alert to its next occurrence or deactivates it. A
failure is confined to the alert it happened on. Ticks never overlap within
one scheduler: a tick that arrives while another is running returns at once.

Delivery is at-least-once. A non-recurring alert is deactivated only after a
successful publish, so a failed publish is retried on the next tick, and a
publish whose follow-up write fails is published again.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncContextManager, AsyncIterator, Callable, Optional, Tuple

from pydantic import BaseModel

from ...core.config import settings
from ...core.logging_config import correlation_context
from ...core.metrics import (
    EXPIRED_DEACTIVATED_TOTAL,
    SCHEDULED_ALERTS_TOTAL,
    SCHEDULER_RUNNING,
    TICK_DURATION_SECONDS,
)
from ...shared.exceptions import AlertPipelineError, InvalidRecurrence
from ...shared.models.base import ensure_utc, utcnow
from ..organization_alerts.publisher import AlertPublisher
from .models import ScheduledAlert
from .recurrence import advance_past
from .repository import ScheduledAlertRepository


logger = logging.getLogger(__name__)

Pipeline = Tuple[ScheduledAlertRepository, AlertPublisher]
PipelineFactory = Callable[[], AsyncContextManager[Pipeline]]


class TickResult(BaseModel):
    processed: int = 0
    published: int = 0
    failed: int = 0
    rescheduled: int = 0
    deactivated: int = 0
    abandoned: int = 0
    skipped_busy: bool = False


class ExecutionRun(BaseModel):
    """Read-only snapshot of the scheduler's in-memory bookkeeping"""
    is_running: bool = False
    last_execution_time: Optional[datetime] = None
    execution_count: int = 0
    last_tick_result: Optional[TickResult] = None

    model_config = {"frozen": True}


class ExecutionScheduler:
    """
    Drives due-alert execution and the expiry sweep.

    Built either from fixed components or from ``pipeline_factory``, an async
    context manager factory that opens a repository and publisher for the
    duration of one tick (one store connection per event loop).
    """

    def __init__(
        self,
        repository: Optional[ScheduledAlertRepository] = None,
        publisher: Optional[AlertPublisher] = None,
        pipeline_factory: Optional[PipelineFactory] = None,
        tick_timeout_seconds: Optional[float] = None,
    ):
        if pipeline_factory is None and (repository is None or publisher is None):
            raise ValueError("ExecutionScheduler needs a repository and publisher or a pipeline_factory")
        self._pipeline_factory = pipeline_factory or self._fixed_pipeline(repository, publisher)
        self.tick_timeout_seconds = tick_timeout_seconds or settings.alerts_tick_timeout_seconds
        self._lock = asyncio.Lock()
        self._run = ExecutionRun()

    @staticmethod
    def _fixed_pipeline(repository: ScheduledAlertRepository, publisher: AlertPublisher) -> PipelineFactory:
        @asynccontextmanager
        async def _pipeline() -> AsyncIterator[Pipeline]:
            yield repository, publisher
        return _pipeline

    @property
    def status(self) -> ExecutionRun:
        return self._run

    def _update_run(self, **changes) -> None:
        self._run = self._run.model_copy(update=changes)

    async def run_tick(self, now: Optional[datetime] = None) -> TickResult:
        """Execute every due alert once. No-op if a tick is already running."""
        if self._lock.locked():
            logger.info("Execution tick already running, skipping")
            return TickResult(skipped_busy=True)

        async with self._lock:
            now = ensure_utc(now) if now else utcnow()
            correlation_id = correlation_context.new_correlation_id("tick")
            self._update_run(is_running=True, last_execution_time=now)
            SCHEDULER_RUNNING.set(1)
            started = time.monotonic()
            result = TickResult()
            try:
                async with self._pipeline_factory() as (repository, publisher):
                    await self._execute(repository, publisher, now, started, result)
            finally:
                elapsed = time.monotonic() - started
                TICK_DURATION_SECONDS.observe(elapsed)
                SCHEDULER_RUNNING.set(0)
                self._update_run(
                    is_running=False,
                    execution_count=self._run.execution_count + result.processed,
                    last_tick_result=result,
                )
                logger.info(f"Execution tick {correlation_id} finished in {elapsed:.2f}s: {result.model_dump()}")
                correlation_context.clear()
            return result

    async def _execute(
        self,
        repository: ScheduledAlertRepository,
        publisher: AlertPublisher,
        now: datetime,
        started: float,
        result: TickResult,
    ) -> None:
        try:
            due = await repository.due_alerts(now)
        except AlertPipelineError as e:
            logger.error(f"Could not fetch due alerts: {e}")
            SCHEDULED_ALERTS_TOTAL.labels(outcome="fetch_failed").inc()
            return

        logger.info(f"Found {len(due)} due scheduled alerts")

        for index, alert in enumerate(due):
            if time.monotonic() - started > self.tick_timeout_seconds:
                result.abandoned = len(due) - index
                SCHEDULED_ALERTS_TOTAL.labels(outcome="abandoned").inc(result.abandoned)
                logger.warning(
                    f"Tick budget of {self.tick_timeout_seconds:.0f}s exceeded, "
                    f"abandoning {result.abandoned} alerts until the next tick"
                )
                break
            result.processed += 1
            await self._execute_alert(repository, publisher, alert, now, result)

    async def _execute_alert(
        self,
        repository: ScheduledAlertRepository,
        publisher: AlertPublisher,
        alert: ScheduledAlert,
        now: datetime,
        result: TickResult,
    ) -> None:
        try:
            await publisher.publish(alert, now)
        except Exception as e:
            # Record stays active and due; the next tick retries it
            result.failed += 1
            SCHEDULED_ALERTS_TOTAL.labels(outcome="publish_failed").inc()
            logger.error(f"Failed to publish scheduled alert {alert.id}: {e}")
            return

        result.published += 1
        SCHEDULED_ALERTS_TOTAL.labels(outcome="published").inc()

        next_date = None
        if alert.recurs:
            try:
                next_date = advance_past(alert.scheduled_date, alert.recurrence_pattern, now)
            except InvalidRecurrence as e:
                logger.warning(f"Scheduled alert {alert.id} cannot recur, deactivating: {e}")
        elif alert.is_recurring:
            logger.warning(f"Scheduled alert {alert.id} is recurring without a pattern, deactivating")

        try:
            if next_date is not None:
                await repository.persist_next_occurrence(alert, next_date)
                result.rescheduled += 1
                SCHEDULED_ALERTS_TOTAL.labels(outcome="rescheduled").inc()
            else:
                await repository.deactivate(alert.id)
                result.deactivated += 1
                SCHEDULED_ALERTS_TOTAL.labels(outcome="deactivated").inc()
        except AlertPipelineError as e:
            # Published but not advanced: the alert will be published again next tick
            SCHEDULED_ALERTS_TOTAL.labels(outcome="state_write_failed").inc()
            logger.error(f"Scheduled alert {alert.id} was published but its next state was not saved: {e}")

    async def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        """Deactivate active alerts whose expires_at has passed. Safe to repeat."""
        now = ensure_utc(now) if now else utcnow()
        correlation_context.new_correlation_id("cleanup")
        try:
            async with self._pipeline_factory() as (repository, _):
                expired = await repository.expired_active_alerts(now)
                deactivated = 0
                for alert in expired:
                    try:
                        if await repository.deactivate(alert.id):
                            deactivated += 1
                    except AlertPipelineError as e:
                        logger.error(f"Failed to deactivate expired alert {alert.id}: {e}")
            EXPIRED_DEACTIVATED_TOTAL.inc(deactivated)
            logger.info(f"Expiry sweep deactivated {deactivated} of {len(expired)} expired alerts")
            return deactivated
        finally:
            correlation_context.clear()
