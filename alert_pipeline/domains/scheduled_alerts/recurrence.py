"""
Recurrence calculator.

Computes the next occurrence of a scheduled alert with calendar-aware
arithmetic. Month and year steps clamp to the last valid day of the target
month (Jan 31 + 1 month -> Feb 28/29). Arithmetic is done on wall-clock time in
the scheduling timezone so a recurring alert keeps its local time across DST
changes; results are always returned in UTC.

Pure functions: no I/O, no store access.
"""

from datetime import datetime, timezone
from typing import Optional, Union

import pytz
from dateutil.relativedelta import relativedelta

from ...core.config import settings
from ...shared.exceptions import InvalidRecurrence
from ...shared.models.base import ensure_utc
from .models import RecurrenceFrequency, RecurrencePattern


def _step(frequency: RecurrenceFrequency, interval: int) -> relativedelta:
    if frequency == RecurrenceFrequency.DAILY:
        return relativedelta(days=interval)
    if frequency == RecurrenceFrequency.WEEKLY:
        return relativedelta(days=7 * interval)
    if frequency == RecurrenceFrequency.MONTHLY:
        return relativedelta(months=interval)
    if frequency == RecurrenceFrequency.YEARLY:
        return relativedelta(years=interval)
    raise InvalidRecurrence(f"Unsupported frequency: {frequency}", interval=interval)


def _resolve_timezone(tz: Union[str, pytz.BaseTzInfo, None]) -> pytz.BaseTzInfo:
    if tz is None:
        return pytz.timezone(settings.alerts_timezone)
    if isinstance(tz, str):
        return pytz.timezone(tz)
    return tz


def next_occurrence(
    date: datetime,
    pattern: RecurrencePattern,
    tz: Union[str, pytz.BaseTzInfo, None] = None
) -> Optional[datetime]:
    """
    Return the occurrence after ``date``, or None when it falls after the
    pattern's end date (an occurrence exactly on the end date is still valid).

    Raises:
        InvalidRecurrence: interval is not a positive integer or the
            frequency is unknown.
    """
    interval = pattern.interval
    if not isinstance(interval, int) or isinstance(interval, bool) or interval <= 0:
        raise InvalidRecurrence(f"Recurrence interval must be positive, got {interval!r}", interval=interval)

    try:
        frequency = RecurrenceFrequency(pattern.frequency)
    except ValueError as e:
        raise InvalidRecurrence(f"Unsupported frequency: {pattern.frequency}", interval=interval) from e

    zone = _resolve_timezone(tz)
    local = ensure_utc(date).astimezone(zone)
    # Step on naive wall-clock time, then re-localize for the target date's offset
    wall_clock = local.replace(tzinfo=None) + _step(frequency, interval)
    candidate = zone.localize(wall_clock).astimezone(timezone.utc)

    end_date = ensure_utc(pattern.end_date)
    if end_date is not None and candidate > end_date:
        return None
    return candidate


def advance_past(
    date: datetime,
    pattern: RecurrencePattern,
    now: datetime,
    tz: Union[str, pytz.BaseTzInfo, None] = None,
    max_steps: Optional[int] = None
) -> Optional[datetime]:
    """
    Return the next occurrence after ``date``, skipped forward past ``now``
    when that is possible.

    An alert that missed several periods is moved to its first future
    occurrence instead of firing once per tick until it catches up. If the
    end date or the step limit is reached before passing ``now``, the plain
    ``next_occurrence(date)`` is returned. None only when that is None.

    Raises:
        InvalidRecurrence: propagated from ``next_occurrence``.
    """
    limit = max_steps or settings.alerts_max_catchup_occurrences
    now = ensure_utc(now)
    following = next_occurrence(date, pattern, tz)

    current = following
    steps = 1
    while current is not None and current <= now and steps < limit:
        current = next_occurrence(current, pattern, tz)
        steps += 1

    if current is not None and current > now:
        return current
    return following
