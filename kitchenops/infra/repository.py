from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from kitchenops.domain.entities import AssigneeEntity, DueTaskEntity, TaskEntity
from kitchenops.domain.enums import FINISHED_STATUSES, Recurrence, TaskStatus

from .models import (
    TASK_DEPENDENT_MODELS,
    RestaurantModel,
    TaskAssignmentModel,
    TaskModel,
    TaskTagModel,
    UserModel,
)

# Columns carried over when a recurring task is renewed.
RENEWED_FIELDS = (
    "title",
    "description",
    "priority",
    "restaurant_id",
    "created_by",
    "recurrence",
    "estimated_time",
)


def _to_entity(model: TaskModel) -> TaskEntity:
    return TaskEntity(
        id=model.id,
        title=model.title,
        description=model.description,
        status=model.status,
        priority=model.priority,
        due_date=model.due_date,
        created_at=model.created_at,
        recurrence=model.recurrence,
        restaurant_id=model.restaurant_id,
        created_by=model.created_by,
        estimated_time=model.estimated_time,
    )


class TaskRepository:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def get_task(self, task_id: int) -> Optional[TaskEntity]:
        with self._session_factory() as session:
            task = session.get(TaskModel, task_id)
            return _to_entity(task) if task else None

    def list_open_tasks_with_due_date(self) -> list[DueTaskEntity]:
        with self._session_factory() as session:
            stmt = (
                select(
                    TaskModel.id,
                    TaskModel.title,
                    TaskModel.status,
                    TaskModel.due_date,
                    TaskModel.created_at,
                    RestaurantModel.name.label("restaurant_name"),
                )
                .outerjoin(RestaurantModel, TaskModel.restaurant_id == RestaurantModel.id)
                .where(
                    TaskModel.due_date.is_not(None),
                    TaskModel.status.notin_(FINISHED_STATUSES),
                )
                .order_by(TaskModel.due_date.asc())
            )
            return [
                DueTaskEntity(
                    id=row.id,
                    title=row.title,
                    status=row.status,
                    due_date=row.due_date,
                    created_at=row.created_at,
                    restaurant_name=row.restaurant_name,
                )
                for row in session.execute(stmt)
            ]

    def list_assignees(self, task_id: int) -> list[AssigneeEntity]:
        with self._session_factory() as session:
            stmt = (
                select(UserModel.id, UserModel.email, UserModel.name)
                .join(TaskAssignmentModel, TaskAssignmentModel.user_id == UserModel.id)
                .where(TaskAssignmentModel.task_id == task_id)
                .order_by(UserModel.id.asc())
            )
            return [
                AssigneeEntity(id=row.id, email=row.email, name=row.name)
                for row in session.execute(stmt)
            ]

    def list_finished_task_ids(self) -> list[int]:
        with self._session_factory() as session:
            stmt = select(TaskModel.id).where(TaskModel.status.in_(FINISHED_STATUSES))
            return list(session.scalars(stmt))

    def list_finished_by_recurrence(self, recurrence: str) -> list[TaskEntity]:
        with self._session_factory() as session:
            stmt = (
                select(TaskModel)
                .where(
                    TaskModel.recurrence == recurrence,
                    TaskModel.status.in_(FINISHED_STATUSES),
                )
                .order_by(TaskModel.id.asc())
            )
            return [_to_entity(task) for task in session.scalars(stmt)]

    def list_assignee_ids(self, task_id: int) -> list[int]:
        with self._session_factory() as session:
            return self._assignee_ids(session, task_id)

    def list_tag_ids(self, task_id: int) -> list[int]:
        with self._session_factory() as session:
            return self._tag_ids(session, task_id)

    def create_task(self, data: dict) -> TaskEntity:
        with self._session_factory() as session:
            task = TaskModel(**data)
            session.add(task)
            session.commit()
            session.refresh(task)
            return _to_entity(task)

    def update_task(self, task_id: int, data: dict) -> Optional[TaskEntity]:
        with self._session_factory() as session:
            task = session.get(TaskModel, task_id)
            if not task:
                return None
            for key, value in data.items():
                setattr(task, key, value)
            session.commit()
            session.refresh(task)
            return _to_entity(task)

    def add_assignee(self, task_id: int, user_id: int) -> None:
        with self._session_factory() as session:
            session.add(TaskAssignmentModel(task_id=task_id, user_id=user_id))
            session.commit()

    def add_tag(self, task_id: int, tag_id: int) -> None:
        with self._session_factory() as session:
            session.add(TaskTagModel(task_id=task_id, tag_id=tag_id))
            session.commit()

    def renew_recurring_task(self, task: TaskEntity, due_date: datetime, created_at: datetime) -> int:
        """Clone a finished recurring task for its next period and retire the original.

        The clone gets status ``planned``, the given due date and a fresh
        ``created_at``; assignees and tags are copied over, and the source's
        recurrence is set to ``once``. Everything happens in one transaction.
        Returns the id of the new task.
        """
        with self._session_factory() as session:
            source = session.get(TaskModel, task.id)
            if source is None:
                raise LookupError(f"Task {task.id} no longer exists")

            clone = TaskModel(
                **{field: getattr(source, field) for field in RENEWED_FIELDS},
                status=TaskStatus.PLANNED.value,
                due_date=due_date,
                created_at=created_at,
            )
            session.add(clone)
            session.flush()

            for user_id in self._assignee_ids(session, source.id):
                session.add(TaskAssignmentModel(task_id=clone.id, user_id=user_id))
            for tag_id in self._tag_ids(session, source.id):
                session.add(TaskTagModel(task_id=clone.id, tag_id=tag_id))

            source.recurrence = Recurrence.ONCE.value
            session.commit()
            return clone.id

    def list_expired_finished_tasks(self, cutoff: datetime) -> list[TaskEntity]:
        with self._session_factory() as session:
            stmt = (
                select(TaskModel)
                .where(
                    TaskModel.status.in_(FINISHED_STATUSES),
                    TaskModel.due_date.is_not(None),
                    TaskModel.due_date < cutoff,
                    TaskModel.recurrence == Recurrence.ONCE.value,
                )
                .order_by(TaskModel.id.asc())
            )
            return [_to_entity(task) for task in session.scalars(stmt)]

    def delete_tasks(self, task_ids: list[int]) -> int:
        """Delete tasks and every row that references them. Returns the number of tasks removed."""
        if not task_ids:
            return 0
        with self._session_factory() as session:
            for model in TASK_DEPENDENT_MODELS:
                session.execute(delete(model).where(model.task_id.in_(task_ids)))
            result = session.execute(delete(TaskModel).where(TaskModel.id.in_(task_ids)))
            session.commit()
            return result.rowcount or 0

    @staticmethod
    def _assignee_ids(session: Session, task_id: int) -> list[int]:
        return list(
            session.scalars(
                select(TaskAssignmentModel.user_id).where(TaskAssignmentModel.task_id == task_id)
            )
        )

    @staticmethod
    def _tag_ids(session: Session, task_id: int) -> list[int]:
        return list(
            session.scalars(select(TaskTagModel.tag_id).where(TaskTagModel.task_id == task_id))
        )
