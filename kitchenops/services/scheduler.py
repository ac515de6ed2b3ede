"""Notification service driver: runs the scheduler phases once at startup, then on an interval."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from kitchenops.config import Settings
from kitchenops.infra.repository import TaskRepository

from .expiration import DEFAULT_REMINDER_INTERVAL, check_expiring_tasks
from .notifier import Notifier
from .recurrence import SUNDAY, process_recurring_tasks
from .retention import DEFAULT_RETENTION, sweep_finished_tasks
from .state import SchedulerState

logger = logging.getLogger(__name__)

DEFAULT_CHECK_INTERVAL_SECONDS = 3600
TICK_JOB_ID = "kitchenops-tick"


class Phase(StrEnum):
    EXPIRATION_CHECK = "expiration_check"
    RECREATE = "recreate"
    SWEEP = "sweep"


PHASE_ORDER = (Phase.EXPIRATION_CHECK, Phase.RECREATE, Phase.SWEEP)


@dataclass
class SchedulerContext:
    store: TaskRepository
    notifier: Notifier
    state: SchedulerState = field(default_factory=SchedulerState)
    clock: Callable[[], datetime] = datetime.now
    reminder_interval: timedelta = DEFAULT_REMINDER_INTERVAL
    retention: timedelta = DEFAULT_RETENTION
    week_start_day: int = SUNDAY

    @classmethod
    def from_settings(
        cls, store: TaskRepository, notifier: Notifier, settings: Settings
    ) -> SchedulerContext:
        return cls(
            store=store,
            notifier=notifier,
            reminder_interval=timedelta(hours=settings.reminder_interval_hours),
            retention=timedelta(days=settings.retention_days),
            week_start_day=settings.week_start_day,
        )


def run_phase(context: SchedulerContext, phase: Phase) -> int:
    now = context.clock()
    if phase is Phase.EXPIRATION_CHECK:
        return check_expiring_tasks(
            context.store, context.notifier, context.state, now, context.reminder_interval
        )
    if phase is Phase.RECREATE:
        return process_recurring_tasks(context.store, context.state, now, context.week_start_day)
    if phase is Phase.SWEEP:
        return sweep_finished_tasks(context.store, now, context.retention)
    raise ValueError(f"Unknown phase: {phase}")


def run_tick(context: SchedulerContext) -> dict[Phase, int]:
    """Run every phase once, in order, and return what each one processed."""
    results = {}
    for phase in PHASE_ORDER:
        results[phase] = run_phase(context, phase)
    logger.debug("Tick finished: %s", {phase.value: count for phase, count in results.items()})
    return results


def start_notification_service(
    context: SchedulerContext,
    interval_seconds: int = DEFAULT_CHECK_INTERVAL_SECONDS,
) -> BackgroundScheduler:
    """Run one tick right away, then keep ticking every ``interval_seconds``.

    Each call returns its own scheduler; pass it to
    :func:`stop_notification_service` to stop ticking.
    """
    run_tick(context)

    scheduler = BackgroundScheduler()
    scheduler.add_job(
        run_tick,
        trigger=IntervalTrigger(seconds=interval_seconds),
        args=[context],
        id=TICK_JOB_ID,
        name="notification service tick",
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("Notification service started - checking every %d seconds", interval_seconds)
    return scheduler


def stop_notification_service(handle: BackgroundScheduler, wait: bool = False) -> None:
    """Stop future ticks. A tick already running is left to finish."""
    if handle.running:
        handle.shutdown(wait=wait)
    logger.info("Notification service stopped")
