from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class SchedulerState:
    """Process-local bookkeeping of the scheduler. Lost on restart."""

    # task id -> when the last reminder for it was sent
    last_notification_sent: dict[int, datetime] = field(default_factory=dict)
    # recurrence type -> last period key processed
    last_recurrence_period: dict[str, str] = field(default_factory=dict)
