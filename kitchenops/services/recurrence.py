from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta

from kitchenops.domain.enums import Recurrence
from kitchenops.infra.repository import TaskRepository

from .state import SchedulerState

logger = logging.getLogger(__name__)

SUNDAY = 6
END_OF_DAY = time(23, 59, 59)


def daily_key(now: datetime) -> str:
    return now.strftime("%Y-%m-%d")


def weekly_key(now: datetime) -> str:
    weeks = (now - datetime(now.year, 1, 1)) // timedelta(days=7)
    return f"{now.year}-W{weeks}"


def monthly_key(now: datetime) -> str:
    return now.strftime("%Y-%m")


def week_start(today: date, week_start_day: int = SUNDAY) -> date:
    return today - timedelta(days=(today.weekday() - week_start_day) % 7)


def next_due_date(recurrence: str, now: datetime, week_start_day: int = SUNDAY) -> datetime:
    """Due date of the occurrence that starts in the period containing ``now``."""
    today = now.date()
    if recurrence == Recurrence.WEEKLY.value:
        last_day = week_start(today, week_start_day) + timedelta(days=6)
        return datetime.combine(last_day, END_OF_DAY)
    if recurrence == Recurrence.MONTHLY.value:
        last_day = today.replace(day=_days_in_month(today.year, today.month))
        return datetime.combine(last_day, END_OF_DAY)
    return datetime.combine(today, END_OF_DAY)


def process_recurring_tasks(
    store: TaskRepository,
    state: SchedulerState,
    now: datetime,
    week_start_day: int = SUNDAY,
) -> int:
    """Renew finished recurring tasks once per day, week and month.

    Daily tasks are renewed on the first run of each calendar day, weekly
    ones on the first run of the week-start day and monthly ones on the
    first run of the 1st. Returns the number of tasks renewed.
    """
    due_passes = [(Recurrence.DAILY.value, daily_key(now))]
    if now.weekday() == week_start_day:
        due_passes.append((Recurrence.WEEKLY.value, weekly_key(now)))
    if now.day == 1:
        due_passes.append((Recurrence.MONTHLY.value, monthly_key(now)))

    renewed = 0
    for recurrence, period_key in due_passes:
        if state.last_recurrence_period.get(recurrence) == period_key:
            continue
        renewed += _renew_all(store, recurrence, now, week_start_day)
        state.last_recurrence_period[recurrence] = period_key
    return renewed


def _renew_all(store: TaskRepository, recurrence: str, now: datetime, week_start_day: int) -> int:
    try:
        tasks = store.list_finished_by_recurrence(recurrence)
    except Exception:  # noqa: BLE001
        logger.exception("Error processing %s recurring tasks", recurrence)
        return 0

    if not tasks:
        return 0

    logger.info("Processing %d %s recurring task(s)", len(tasks), recurrence)
    due_date = next_due_date(recurrence, now, week_start_day)
    renewed = 0
    for task in tasks:
        try:
            new_id = store.renew_recurring_task(task, due_date=due_date, created_at=now)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to recreate %s task %s", recurrence, task.id)
            continue
        renewed += 1
        logger.info(
            "Recreated %s task %r (old id=%s, new id=%s)", recurrence, task.title, task.id, new_id
        )
    logger.info("Finished processing %s recurring tasks", recurrence)
    return renewed


def _days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - timedelta(days=1)).day
