from __future__ import annotations

from dataclasses import replace
from datetime import datetime

import pytest

from kitchenops.services.recurrence import (
    daily_key,
    monthly_key,
    next_due_date,
    process_recurring_tasks,
    weekly_key,
)
from kitchenops.services.state import SchedulerState

SUNDAY_FIRST = datetime(2026, 3, 1, 0, 30)  # a Sunday and the 1st of the month
MONDAY = datetime(2026, 3, 2, 0, 30)
WEDNESDAY = datetime(2026, 3, 4, 14, 15)


def test_period_keys() -> None:
    assert daily_key(SUNDAY_FIRST) == "2026-03-01"
    assert weekly_key(SUNDAY_FIRST) == "2026-W8"
    assert weekly_key(datetime(2026, 1, 7, 23, 0)) == "2026-W0"
    assert weekly_key(datetime(2026, 1, 8, 0, 0)) == "2026-W1"
    assert monthly_key(SUNDAY_FIRST) == "2026-03"


@pytest.mark.parametrize(
    ("recurrence", "now", "expected"),
    [
        ("daily", WEDNESDAY, datetime(2026, 3, 4, 23, 59, 59)),
        ("weekly", SUNDAY_FIRST, datetime(2026, 3, 7, 23, 59, 59)),
        ("weekly", WEDNESDAY, datetime(2026, 3, 7, 23, 59, 59)),
        ("monthly", SUNDAY_FIRST, datetime(2026, 3, 31, 23, 59, 59)),
        ("monthly", datetime(2026, 2, 1, 9, 0), datetime(2026, 2, 28, 23, 59, 59)),
        ("monthly", datetime(2026, 12, 1, 9, 0), datetime(2026, 12, 31, 23, 59, 59)),
        ("fortnightly", WEDNESDAY, datetime(2026, 3, 4, 23, 59, 59)),
    ],
)
def test_next_due_date(recurrence: str, now: datetime, expected: datetime) -> None:
    assert next_due_date(recurrence, now) == expected


def test_weekly_due_date_follows_configured_week_start() -> None:
    # Weeks starting on Monday end on Sunday.
    assert next_due_date("weekly", WEDNESDAY, week_start_day=0) == datetime(2026, 3, 8, 23, 59, 59)


def test_daily_task_renewed_once_per_day(repo, add_task, add_user, add_tag) -> None:
    source_id = add_task(title="Wipe tables", status="completed", recurrence="daily")
    user_id = add_user("john@downtown.com")
    tag_id = add_tag("routine")
    repo.add_assignee(source_id, user_id)
    repo.add_tag(source_id, tag_id)
    state = SchedulerState()

    assert process_recurring_tasks(repo, state, MONDAY) == 1

    renewed = [t for t in repo.list_open_tasks_with_due_date() if t.title == "Wipe tables"]
    assert len(renewed) == 1
    clone = repo.get_task(renewed[0].id)
    assert clone.status == "planned"
    assert clone.due_date == datetime(2026, 3, 2, 23, 59, 59)
    assert clone.created_at == MONDAY
    assert clone.recurrence == "daily"
    assert repo.list_assignee_ids(clone.id) == [user_id]
    assert repo.list_tag_ids(clone.id) == [tag_id]
    assert repo.get_task(source_id).recurrence == "once"
    assert state.last_recurrence_period["daily"] == "2026-03-02"

    # Finished again later the same day: waits for tomorrow.
    repo.update_task(clone.id, {"status": "verified"})
    assert process_recurring_tasks(repo, state, MONDAY.replace(hour=13)) == 0
    assert process_recurring_tasks(repo, state, datetime(2026, 3, 3, 0, 30)) == 1


def test_open_recurring_task_is_not_renewed(repo, add_task) -> None:
    task_id = add_task(status="in_progress", recurrence="daily")

    assert process_recurring_tasks(repo, SchedulerState(), MONDAY) == 0
    assert repo.get_task(task_id).recurrence == "daily"


def test_weekly_tasks_wait_for_week_start(repo, add_task) -> None:
    source_id = add_task(status="completed", recurrence="weekly")
    state = SchedulerState()

    assert process_recurring_tasks(repo, state, MONDAY) == 0
    assert repo.get_task(source_id).recurrence == "weekly"
    assert "weekly" not in state.last_recurrence_period

    sunday = datetime(2026, 3, 8, 0, 30)
    assert process_recurring_tasks(repo, state, sunday) == 1
    assert repo.get_task(source_id).recurrence == "once"
    assert state.last_recurrence_period["weekly"] == weekly_key(sunday)


def test_monthly_tasks_wait_for_first_of_month(repo, add_task) -> None:
    source_id = add_task(status="verified", recurrence="monthly")
    state = SchedulerState()

    assert process_recurring_tasks(repo, state, WEDNESDAY) == 0
    assert repo.get_task(source_id).recurrence == "monthly"

    assert process_recurring_tasks(repo, state, SUNDAY_FIRST) == 1
    renewed = repo.list_finished_by_recurrence("monthly")
    assert renewed == []
    assert state.last_recurrence_period["monthly"] == "2026-03"


def test_all_types_processed_on_sunday_the_first(repo, add_task) -> None:
    add_task(title="Daily", status="completed", recurrence="daily")
    add_task(title="Weekly", status="completed", recurrence="weekly")
    add_task(title="Monthly", status="completed", recurrence="monthly")

    assert process_recurring_tasks(repo, SchedulerState(), SUNDAY_FIRST) == 3

    due_dates = {t.title: t.due_date for t in repo.list_open_tasks_with_due_date()}
    assert due_dates == {
        "Daily": datetime(2026, 3, 1, 23, 59, 59),
        "Weekly": datetime(2026, 3, 7, 23, 59, 59),
        "Monthly": datetime(2026, 3, 31, 23, 59, 59),
    }


def test_failed_renewal_does_not_stop_the_rest(repo, add_task, caplog) -> None:
    first = add_task(title="Mop floor", status="completed", recurrence="daily")
    second = add_task(title="Empty bins", status="completed", recurrence="daily")

    class FlakyStore:
        def list_finished_by_recurrence(self, recurrence):
            return repo.list_finished_by_recurrence(recurrence)

        def renew_recurring_task(self, task, due_date, created_at):
            if task.id == first:
                raise RuntimeError("constraint failed")
            return repo.renew_recurring_task(task, due_date=due_date, created_at=created_at)

    assert process_recurring_tasks(FlakyStore(), SchedulerState(), MONDAY) == 1
    assert repo.get_task(first).recurrence == "daily"
    assert repo.get_task(second).recurrence == "once"
    assert f"Failed to recreate daily task {first}" in caplog.text


def test_vanished_task_is_logged(repo, add_task, caplog) -> None:
    task_id = add_task(status="completed", recurrence="daily")
    ghost = replace(repo.get_task(task_id), id=task_id + 100)

    class StaleStore:
        def list_finished_by_recurrence(self, recurrence):
            return [ghost]

        def renew_recurring_task(self, task, due_date, created_at):
            return repo.renew_recurring_task(task, due_date=due_date, created_at=created_at)

    assert process_recurring_tasks(StaleStore(), SchedulerState(), MONDAY) == 0
    assert "no longer exists" in caplog.text
