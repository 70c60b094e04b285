from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable

from sqlalchemy.orm import Session

from logiscan.models.logistics_models import TaskChain, TodoTask
from logiscan.models.statuses import (
    NOTIFY_TASK_AVAILABLE,
    NOTIFY_TASK_CANCELLED,
    NOTIFY_TASK_COMPLETED,
    NOTIFY_TASK_READY,
    NOTIFY_TASK_STARTED,
    TASK_BLOCKED,
    TASK_CANCELLED,
    TASK_COMPLETED,
    TASK_IN_PROGRESS,
    TASK_PENDING,
    TASK_TRANSITIONS,
)
from logiscan.services.errors import InvalidTaskTransition
from logiscan.services.notification_service import NotificationIntent
from logiscan.services.repositories import find_chain_task


LOGGER = logging.getLogger("logiscan.tasks")


@dataclass
class TaskSpec:
    title: str
    task_type: str = "custom"
    description: str | None = None
    assigned_user_id: str | None = None
    scan_list_id: str | None = None
    truck_id: str | None = None
    location: str | None = None
    trigger_notification: bool = False
    # Head of chain waits on something outside the chain.
    blocked: bool = False


def _transition(task: TodoTask, target: str) -> None:
    current = task.Status or TASK_PENDING
    if target not in TASK_TRANSITIONS.get(current, set()):
        raise InvalidTaskTransition(task.TaskID, current, target)
    task.Status = target


def build_task_chain(
    db: Session,
    event_id: str | None,
    specs: Iterable[TaskSpec],
    created_by: str,
) -> list[TodoTask]:
    specs = list(specs)
    if not specs:
        return []

    chain = TaskChain(ChainID=str(uuid.uuid4()), EventID=event_id, CreatedBy=created_by)
    db.add(chain)

    tasks: list[TodoTask] = []
    for index, spec in enumerate(specs):
        status = TASK_BLOCKED if index > 0 or spec.blocked else TASK_PENDING
        task = TodoTask(
            TaskID=str(uuid.uuid4()),
            Title=spec.title,
            Description=spec.description,
            Type=spec.task_type,
            Status=status,
            EventID=event_id,
            ScanListID=spec.scan_list_id,
            TruckID=spec.truck_id,
            AssignedUserID=spec.assigned_user_id,
            CreatedBy=created_by,
            ChainID=chain.ChainID,
            ChainIndex=index,
            TriggerNotification=spec.trigger_notification,
            Location=spec.location,
        )
        db.add(task)
        tasks.append(task)

    db.flush()
    LOGGER.info("Built task chain %s with %s task(s) for event %s", chain.ChainID, len(tasks), event_id)
    return tasks


def next_task(db: Session, task: TodoTask) -> TodoTask | None:
    if task.ChainID is None or task.ChainIndex is None:
        return None
    return find_chain_task(db, task.ChainID, task.ChainIndex + 1)


def previous_task(db: Session, task: TodoTask) -> TodoTask | None:
    if task.ChainID is None or task.ChainIndex is None:
        return None
    return find_chain_task(db, task.ChainID, task.ChainIndex - 1)


def _ready_intent(task: TodoTask) -> NotificationIntent:
    if task.AssignedUserID:
        return NotificationIntent(
            recipient_user_id=task.AssignedUserID,
            kind=NOTIFY_TASK_READY,
            task_id=task.TaskID,
            task_title=task.Title,
            message=f"The previous task is finished. You can start '{task.Title}'",
        )
    return NotificationIntent(
        recipient_user_id=None,
        kind=NOTIFY_TASK_AVAILABLE,
        task_id=task.TaskID,
        task_title=task.Title,
        message=f"New task available: '{task.Title}'",
    )


def complete_task(
    db: Session,
    task: TodoTask,
    clock: Callable[[], datetime] = datetime.now,
) -> list[NotificationIntent]:
    _transition(task, TASK_COMPLETED)
    task.CompletedAt = clock()
    intents: list[NotificationIntent] = []

    following = next_task(db, task)
    if following is not None and following.Status in {TASK_BLOCKED, TASK_PENDING}:
        following.Status = TASK_PENDING
        intents.append(_ready_intent(following))
        LOGGER.info("Task %s completed, unblocked %s", task.TaskID, following.TaskID)
    else:
        LOGGER.info("Task %s completed", task.TaskID)

    if task.TriggerNotification:
        intents.append(
            NotificationIntent(
                recipient_user_id=task.CreatedBy,
                kind=NOTIFY_TASK_COMPLETED,
                task_id=task.TaskID,
                task_title=task.Title,
                message=f"Task '{task.Title}' has been completed",
            )
        )

    db.flush()
    return intents


def cancel_task(db: Session, task: TodoTask, reason: str | None = None) -> list[NotificationIntent]:
    # The successor stays Blocked until an operator intervenes.
    _transition(task, TASK_CANCELLED)
    task.CancelReason = reason
    intents: list[NotificationIntent] = []

    if task.AssignedUserID:
        message = f"Task '{task.Title}' has been cancelled"
        if reason:
            message = f"{message}. Reason: {reason}"
        intents.append(
            NotificationIntent(
                recipient_user_id=task.AssignedUserID,
                kind=NOTIFY_TASK_CANCELLED,
                task_id=task.TaskID,
                task_title=task.Title,
                message=message,
            )
        )
    if task.CreatedBy != task.AssignedUserID:
        intents.append(
            NotificationIntent(
                recipient_user_id=task.CreatedBy,
                kind=NOTIFY_TASK_CANCELLED,
                task_id=task.TaskID,
                task_title=task.Title,
                message=f"Task '{task.Title}' has been cancelled",
            )
        )

    db.flush()
    LOGGER.info("Task %s cancelled (reason=%s)", task.TaskID, reason)
    return intents


def start_task(
    db: Session,
    task: TodoTask,
    user_id: str,
    clock: Callable[[], datetime] = datetime.now,
) -> list[NotificationIntent]:
    _transition(task, TASK_IN_PROGRESS)
    task.StartedAt = clock()
    task.AssignedUserID = user_id
    db.flush()

    if task.CreatedBy == user_id:
        return []
    return [
        NotificationIntent(
            recipient_user_id=task.CreatedBy,
            kind=NOTIFY_TASK_STARTED,
            task_id=task.TaskID,
            task_title=task.Title,
            message=f"Task '{task.Title}' has been started",
        )
    ]


def serialize_task(task: TodoTask) -> dict:
    return {
        "taskID": task.TaskID,
        "title": task.Title,
        "description": task.Description,
        "type": task.Type,
        "status": task.Status,
        "eventID": task.EventID,
        "scanListID": task.ScanListID,
        "truckID": task.TruckID,
        "assignedUserID": task.AssignedUserID,
        "createdBy": task.CreatedBy,
        "chainID": task.ChainID,
        "chainIndex": task.ChainIndex,
        "triggerNotification": bool(task.TriggerNotification),
        "location": task.Location,
        "startedAt": task.StartedAt,
        "completedAt": task.CompletedAt,
    }
