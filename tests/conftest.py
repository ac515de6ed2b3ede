from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from kitchenops.infra import models
from kitchenops.infra.db import Base, create_session_factory
from kitchenops.infra.repository import TaskRepository
from kitchenops.services.notifier import ExpirationNotification, NotificationError


class FakeNotifier:
    def __init__(self, failing: set[str] | None = None) -> None:
        self.sent: list[ExpirationNotification] = []
        self.attempts: list[str] = []
        self._failing = failing or set()

    def send_expiration_notification(self, notification: ExpirationNotification) -> None:
        self.attempts.append(notification.recipient_email)
        if notification.recipient_email in self._failing:
            raise NotificationError(f"mailbox {notification.recipient_email} unavailable")
        self.sent.append(notification)


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture()
def repo(session_factory) -> TaskRepository:
    return TaskRepository(session_factory)


@pytest.fixture()
def make_notifier():
    return FakeNotifier


@pytest.fixture()
def restaurant(session_factory) -> int:
    with session_factory() as session:
        row = models.RestaurantModel(name="Downtown Pizzeria", location="123 Main St")
        session.add(row)
        session.commit()
        return row.id


@pytest.fixture()
def add_user(session_factory, restaurant):
    def _add_user(email: str, name: str | None = None) -> int:
        with session_factory() as session:
            user = models.UserModel(email=email, name=name, restaurant_id=restaurant)
            session.add(user)
            session.commit()
            return user.id

    return _add_user


@pytest.fixture()
def add_tag(session_factory, restaurant):
    def _add_tag(name: str) -> int:
        with session_factory() as session:
            tag = models.TagModel(name=name, restaurant_id=restaurant)
            session.add(tag)
            session.commit()
            return tag.id

    return _add_tag


@pytest.fixture()
def add_task(repo, restaurant):
    def _add_task(
        title: str = "Clean the fryer",
        status: str = "assigned",
        created_at: datetime = datetime(2026, 3, 2, 8, 0),
        due_date: datetime | None = datetime(2026, 3, 2, 18, 0),
        recurrence: str = "once",
        **extra,
    ) -> int:
        data = {
            "title": title,
            "status": status,
            "created_at": created_at,
            "due_date": due_date,
            "recurrence": recurrence,
            "restaurant_id": restaurant,
        }
        data.update(extra)
        return repo.create_task(data).id

    return _add_task
