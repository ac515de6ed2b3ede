from __future__ import annotations

import logging
from datetime import datetime, timedelta

from kitchenops.domain.entities import DueTaskEntity
from kitchenops.infra.repository import TaskRepository

from .notifier import ExpirationNotification, Notifier
from .state import SchedulerState

logger = logging.getLogger(__name__)

DEFAULT_REMINDER_INTERVAL = timedelta(hours=24)


def task_progress(task: DueTaskEntity, now: datetime) -> float:
    """Fraction of the time between creation and due date that has elapsed."""
    total = task.due_date - task.created_at
    if total <= timedelta(0):
        return 1.0
    return (now - task.created_at) / total


def is_near_due(task: DueTaskEntity, now: datetime) -> bool:
    total = task.due_date - task.created_at
    if total <= timedelta(0):
        return True
    # elapsed / total >= 2/3, kept in exact timedelta arithmetic
    return (now - task.created_at) * 3 >= total * 2


def is_overdue(task: DueTaskEntity, now: datetime) -> bool:
    return now > task.due_date


def should_send(
    state: SchedulerState,
    task_id: int,
    now: datetime,
    interval: timedelta = DEFAULT_REMINDER_INTERVAL,
) -> bool:
    last_sent = state.last_notification_sent.get(task_id)
    return last_sent is None or now - last_sent >= interval


def check_expiring_tasks(
    store: TaskRepository,
    notifier: Notifier,
    state: SchedulerState,
    now: datetime,
    interval: timedelta = DEFAULT_REMINDER_INTERVAL,
) -> int:
    """Remind assignees of open tasks that are overdue or two thirds through their time.

    Reminders for a task are throttled to one round per ``interval``. Markers
    of finished tasks are dropped at the end of the run. Returns the number
    of delivery attempts; errors are logged, never raised.
    """
    attempts = 0
    try:
        tasks = store.list_open_tasks_with_due_date()
    except Exception:  # noqa: BLE001
        logger.exception("Error checking for expiring tasks")
        return attempts

    for task in tasks:
        try:
            attempts += _remind(store, notifier, state, task, now, interval)
        except Exception:  # noqa: BLE001
            logger.exception("Error checking task %s for reminders", task.id)

    try:
        _forget_finished(store, state)
    except Exception:  # noqa: BLE001
        logger.exception("Error clearing reminder markers of finished tasks")

    return attempts


def _remind(
    store: TaskRepository,
    notifier: Notifier,
    state: SchedulerState,
    task: DueTaskEntity,
    now: datetime,
    interval: timedelta,
) -> int:
    overdue = is_overdue(task, now)
    if not overdue and not is_near_due(task, now):
        return 0

    assignees = store.list_assignees(task.id)
    if not assignees:
        return 0

    if not should_send(state, task.id, now, interval):
        return 0

    urgency = "OVERDUE" if overdue else "2/3 TIME PASSED"
    for assignee in assignees:
        notification = ExpirationNotification(
            recipient_email=assignee.email,
            task_title=task.title,
            task_id=task.id,
            due_date=task.due_date,
            assigned_to=assignee.name or "User",
            restaurant_name=task.restaurant_name or "Restaurant",
            is_overdue=overdue,
        )
        try:
            notifier.send_expiration_notification(notification)
        except Exception:  # noqa: BLE001
            logger.exception(
                "Failed to send reminder for task %s to %s", task.id, assignee.email
            )
            continue
        logger.info(
            "%s - sent reminder for task %r (id=%s, progress=%.0f%%) to %s",
            urgency,
            task.title,
            task.id,
            task_progress(task, now) * 100,
            assignee.email,
        )

    state.last_notification_sent[task.id] = now
    return len(assignees)


def _forget_finished(store: TaskRepository, state: SchedulerState) -> None:
    if not state.last_notification_sent:
        return
    for task_id in store.list_finished_task_ids():
        state.last_notification_sent.pop(task_id, None)
