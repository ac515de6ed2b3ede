from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from kitchenops.domain.enums import Recurrence, TaskPriority, TaskStatus

from .db import Base


# Every timestamp column is local wall-clock time, the same clock as due_date.
def localnow() -> datetime:
    return datetime.now()


class RestaurantModel(Base):
    __tablename__ = "restaurants"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    location = Column(String(300), nullable=True)


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    email = Column(String(254), nullable=False, unique=True)
    name = Column(String(200), nullable=True)
    role = Column(String(20), nullable=False, default="worker")
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=True, index=True)


class TagModel(Base):
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    color = Column(String(20), nullable=False, default="#3b82f6")


class TaskModel(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    status = Column(String(50), nullable=False, default=TaskStatus.PLANNED.value, index=True)
    priority = Column(String(20), nullable=False, default=TaskPriority.MEDIUM.value)
    due_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=localnow)
    updated_at = Column(DateTime, nullable=False, default=localnow, onupdate=localnow)
    recurrence = Column(String(20), nullable=False, default=Recurrence.ONCE.value, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    estimated_time = Column(Integer, nullable=True)


class TaskAssignmentModel(Base):
    __tablename__ = "task_assignments"

    task_id = Column(Integer, ForeignKey("tasks.id"), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)


class TaskTagModel(Base):
    __tablename__ = "task_tags"

    task_id = Column(Integer, ForeignKey("tasks.id"), primary_key=True)
    tag_id = Column(Integer, ForeignKey("tags.id"), primary_key=True)


class TaskChecklistModel(Base):
    __tablename__ = "task_checklists"

    id = Column(Integer, primary_key=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    is_done = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=False, default=0)


class CommentModel(Base):
    __tablename__ = "comments"

    id = Column(Integer, primary_key=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=localnow)


class PhotoModel(Base):
    __tablename__ = "photos"

    id = Column(Integer, primary_key=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    file_path = Column(String(500), nullable=False)
    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=localnow)


class TaskStatusHistoryModel(Base):
    __tablename__ = "task_status_history"

    id = Column(Integer, primary_key=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    old_status = Column(String(50), nullable=True)
    new_status = Column(String(50), nullable=False)
    changed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    changed_at = Column(DateTime, nullable=False, default=localnow)


# Rows that reference a task and have to go before the task itself.
TASK_DEPENDENT_MODELS = (
    TaskAssignmentModel,
    TaskTagModel,
    TaskChecklistModel,
    CommentModel,
    PhotoModel,
    TaskStatusHistoryModel,
)
