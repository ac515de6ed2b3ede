from __future__ import annotations

import logging
from datetime import datetime, timedelta

from kitchenops.infra.repository import TaskRepository

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = timedelta(days=7)


def sweep_finished_tasks(
    store: TaskRepository,
    now: datetime,
    retention: timedelta = DEFAULT_RETENTION,
) -> int:
    """Delete finished one-off tasks whose due date is older than ``retention``.

    Renewed recurring tasks become one-off once their successor exists, so
    live recurring tasks are never removed. Returns the number of tasks deleted.
    """
    cutoff = now - retention
    try:
        expired = store.list_expired_finished_tasks(cutoff)
        if not expired:
            return 0
        removed = store.delete_tasks([task.id for task in expired])
    except Exception:  # noqa: BLE001
        logger.exception("Error cleaning up old completed tasks")
        return 0

    logger.info("Cleaned up %d old completed task(s)", removed)
    return removed
