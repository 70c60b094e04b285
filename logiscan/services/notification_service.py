from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from logiscan.models.logistics_models import TaskNotification


LOGGER = logging.getLogger("logiscan.notifications")


@dataclass(frozen=True)
class NotificationIntent:
    recipient_user_id: str | None
    kind: str
    task_id: str
    task_title: str
    message: str

    @property
    def is_broadcast(self) -> bool:
        return self.recipient_user_id is None


class NotificationDispatcher(Protocol):
    def dispatch(self, intent: NotificationIntent) -> None:
        ...


class OutboxDispatcher:
    """Queues intents as TaskNotification rows; a separate worker marks them sent."""

    def __init__(self, db: Session, clock: Callable[[], datetime] = datetime.now):
        self.db = db
        self.clock = clock

    def dispatch(self, intent: NotificationIntent) -> None:
        self.db.add(
            TaskNotification(
                TaskID=intent.task_id,
                TaskTitle=intent.task_title,
                RecipientUserID=intent.recipient_user_id,
                Type=intent.kind,
                Message=intent.message,
                IsRead=False,
                CreatedAt=self.clock(),
            )
        )
        try:
            self.db.flush()
        except SQLAlchemyError:
            self.db.rollback()
            raise


def dispatch_intents(dispatcher: NotificationDispatcher, intents: Iterable[NotificationIntent]) -> int:
    delivered = 0
    for intent in intents:
        try:
            dispatcher.dispatch(intent)
        except Exception:
            LOGGER.exception(
                "Notification %s for task %s could not be dispatched",
                intent.kind,
                intent.task_id,
            )
            continue
        delivered += 1
    return delivered


def list_pending_notifications(db: Session, recipient_user_id: str | None = None) -> list[TaskNotification]:
    stmt = select(TaskNotification).where(TaskNotification.SentAt.is_(None)).order_by(TaskNotification.NotificationID)
    notifications = db.execute(stmt).scalars().all()
    if recipient_user_id is None:
        return list(notifications)
    return [
        notification
        for notification in notifications
        if notification.RecipientUserID is None or notification.RecipientUserID == recipient_user_id
    ]


def serialize_notification(notification: TaskNotification) -> dict:
    return {
        "notificationID": notification.NotificationID,
        "taskID": notification.TaskID,
        "taskTitle": notification.TaskTitle,
        "recipientUserID": notification.RecipientUserID,
        "type": notification.Type,
        "message": notification.Message,
        "isRead": bool(notification.IsRead),
        "createdAt": notification.CreatedAt,
    }
