"""Reminder delivery: the Notifier protocol plus SMTP and log-only implementations."""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from typing import Protocol, runtime_checkable

from kitchenops.config import Settings

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """Raised when a reminder could not be delivered."""


@dataclass(frozen=True)
class ExpirationNotification:
    recipient_email: str
    task_title: str
    task_id: int
    due_date: datetime
    assigned_to: str = "User"
    restaurant_name: str = "Restaurant"
    is_overdue: bool = False

    @property
    def subject(self) -> str:
        if self.is_overdue:
            return f"[{self.restaurant_name}] Overdue task: {self.task_title}"
        return f"[{self.restaurant_name}] Task due soon: {self.task_title}"

    @property
    def body(self) -> str:
        due = self.due_date.strftime("%Y-%m-%d %H:%M")
        if self.is_overdue:
            state = f"was due on {due} and is not finished yet"
        else:
            state = f"is due on {due}; most of the time allotted to it has passed"
        return (
            f"Hello {self.assigned_to},\n\n"
            f'The task "{self.task_title}" (#{self.task_id}) at {self.restaurant_name} {state}.\n\n'
            "Please complete it or update its status.\n"
        )


@runtime_checkable
class Notifier(Protocol):
    """Anything able to deliver an expiration reminder to one recipient."""

    def send_expiration_notification(self, notification: ExpirationNotification) -> None:
        """Deliver the reminder. Raises NotificationError on failure."""
        ...


class LogNotifier:
    """Writes reminders to the log instead of sending them."""

    def send_expiration_notification(self, notification: ExpirationNotification) -> None:
        logger.info(
            "Reminder for %s: %s",
            notification.recipient_email,
            notification.subject,
        )


class SmtpNotifier:
    def __init__(
        self,
        host: str,
        port: int = 587,
        sender: str = "noreply@kitchenops.local",
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        timeout: float = 30.0,
    ) -> None:
        self._host = host
        self._port = port
        self._sender = sender
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._timeout = timeout

    def build_message(self, notification: ExpirationNotification) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self._sender
        message["To"] = notification.recipient_email
        message["Subject"] = notification.subject
        message.set_content(notification.body)
        return message

    def send_expiration_notification(self, notification: ExpirationNotification) -> None:
        message = self.build_message(notification)
        try:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as smtp:
                if self._use_tls:
                    smtp.starttls()
                if self._username:
                    smtp.login(self._username, self._password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(
                f"Could not deliver reminder to {notification.recipient_email}: {exc}"
            ) from exc


def build_notifier(settings: Settings) -> Notifier:
    if not settings.smtp_host:
        logger.warning("SMTP_HOST is not set; reminders will only be logged")
        return LogNotifier()
    return SmtpNotifier(
        host=settings.smtp_host,
        port=settings.smtp_port,
        sender=settings.smtp_sender,
        username=settings.smtp_user,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        timeout=settings.smtp_timeout,
    )
