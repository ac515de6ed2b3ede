from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class TaskEntity:
    id: int | None
    title: str
    description: str
    # Tenants may define their own statuses, so this stays a plain string.
    status: str
    priority: str
    due_date: Optional[datetime]
    created_at: datetime
    recurrence: str
    restaurant_id: int
    created_by: int | None
    estimated_time: int | None


@dataclass(frozen=True)
class DueTaskEntity:
    id: int
    title: str
    status: str
    due_date: datetime
    created_at: datetime
    restaurant_name: str | None


@dataclass(frozen=True)
class AssigneeEntity:
    id: int
    email: str
    name: str | None
