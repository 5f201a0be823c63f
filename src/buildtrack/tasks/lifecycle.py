# src/buildtrack/tasks/lifecycle.py

from __future__ import annotations

"""
Task lifecycle.

The lifecycle state is derived from the record's fields; there is no stored
state enum. Overdue is an orthogonal flag evaluated against wall-clock time on
every call.

The mutation helpers at the bottom are what the surrounding application uses to
move a task between states. They are pure: each returns a new Task.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import StrEnum

from .task_models import Delegation, Task, TaskStatus, as_utc

logger = logging.getLogger(__name__)

FULL = 100


class LifecycleState(StrEnum):
    PENDING_ACCEPTANCE = "pending_acceptance"
    ACCEPTED_WIP = "accepted_wip"
    READY_FOR_REVIEW = "ready_for_review"
    REVIEW_ACCEPTED = "review_accepted"
    REJECTED = "rejected"


class InvalidTransition(ValueError):
    """Raised by the mutation helpers when a move is not legal from the task's current state."""


@dataclass(slots=True, frozen=True)
class LifecycleFlags:
    state: LifecycleState
    overdue: bool


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def is_self_assigned(task: Task) -> bool:
    return bool(task.assigned_by) and task.assigned_by in task.assigned_to


def is_rejected(task: Task) -> bool:
    return task.current_status == TaskStatus.REJECTED


def is_accepted(task: Task) -> bool:
    """Explicitly accepted, or self-assigned (implicitly accepted)."""
    return task.accepted is True or is_self_assigned(task)


def is_overdue(task: Task, now: datetime | None = None) -> bool:
    if task.due_date is None:
        return False
    if now is None:
        now = utc_now()
    return task.completion_percentage < FULL and as_utc(task.due_date) < as_utc(now)


def invariant_violations(task: Task) -> list[str]:
    """
    Field combinations that cannot be produced by the legal transitions.

    review_accepted without ready_for_review is not listed: self-assigned tasks
    are auto-reviewed and may skip the submit step.
    """
    problems: list[str] = []
    pct = task.completion_percentage
    if pct < 0 or pct > FULL:
        problems.append(f"completion_percentage out of range: {pct}")
    if task.ready_for_review and pct < FULL:
        problems.append("ready_for_review below 100%")
    if task.review_accepted and pct < FULL:
        problems.append("review_accepted below 100%")
    return problems


def lifecycle_state(task: Task) -> LifecycleState:
    if is_rejected(task):
        return LifecycleState.REJECTED
    if task.review_accepted and task.completion_percentage == FULL:
        return LifecycleState.REVIEW_ACCEPTED
    if task.ready_for_review and task.completion_percentage == FULL:
        return LifecycleState.READY_FOR_REVIEW
    if is_accepted(task):
        return LifecycleState.ACCEPTED_WIP
    return LifecycleState.PENDING_ACCEPTANCE


def lifecycle_flags(task: Task, now: datetime | None = None) -> LifecycleFlags:
    state = lifecycle_state(task)
    overdue = state not in (LifecycleState.REJECTED, LifecycleState.REVIEW_ACCEPTED) and is_overdue(task, now)
    return LifecycleFlags(state=state, overdue=overdue)


# ---- mutation helpers ----


def accept(task: Task, user_id: str, at: datetime | None = None) -> Task:
    if is_rejected(task):
        raise InvalidTransition(f"task {task.id} was declined; reassign it first")
    if user_id not in task.assigned_to:
        raise InvalidTransition(f"user {user_id} is not an assignee of task {task.id}")
    return replace(
        task,
        accepted=True,
        current_status=TaskStatus.IN_PROGRESS,
        accepted_by=user_id,
        accepted_at=at or utc_now(),
    )


def decline(task: Task, user_id: str, reason: str) -> Task:
    if not reason or not reason.strip():
        raise InvalidTransition("a decline reason is required")
    if user_id not in task.assigned_to:
        raise InvalidTransition(f"user {user_id} is not an assignee of task {task.id}")
    if task.accepted is True:
        raise InvalidTransition(f"task {task.id} was already accepted")
    return replace(
        task,
        accepted=False,
        decline_reason=reason.strip(),
        current_status=TaskStatus.REJECTED,
    )


def update_progress(task: Task, percentage: int, status: TaskStatus | None = None) -> Task:
    """
    Record progress from an assignee.

    Going below 100% withdraws any pending submission. A self-assigned task that
    reaches 100% is reviewed automatically.
    """
    if percentage < 0 or percentage > FULL:
        raise InvalidTransition(f"completion percentage must be within 0..100, got {percentage}")
    if is_rejected(task):
        raise InvalidTransition(f"task {task.id} is rejected")
    if not is_accepted(task):
        raise InvalidTransition(f"task {task.id} has not been accepted")

    if status is None:
        status = TaskStatus.COMPLETED if percentage == FULL else TaskStatus.IN_PROGRESS

    if percentage < FULL:
        return replace(
            task,
            completion_percentage=percentage,
            current_status=status,
            ready_for_review=False,
            review_accepted=False,
        )

    if is_self_assigned(task):
        return replace(
            task,
            completion_percentage=FULL,
            current_status=status,
            ready_for_review=True,
            review_accepted=True,
            reviewed_by=task.assigned_by,
            reviewed_at=utc_now(),
        )
    return replace(task, completion_percentage=FULL, current_status=status)


def submit_for_review(task: Task) -> Task:
    if task.completion_percentage != FULL:
        raise InvalidTransition(f"task {task.id} is at {task.completion_percentage}%, not 100%")
    if task.review_accepted:
        raise InvalidTransition(f"task {task.id} is already done")
    return replace(task, ready_for_review=True)


def _check_reviewer(task: Task, reviewer_id: str) -> None:
    if not task.ready_for_review:
        raise InvalidTransition(f"task {task.id} was not submitted for review")
    if reviewer_id != task.assigned_by:
        raise InvalidTransition(f"only the creator can review task {task.id}")


def accept_review(task: Task, reviewer_id: str, at: datetime | None = None) -> Task:
    _check_reviewer(task, reviewer_id)
    return replace(
        task,
        review_accepted=True,
        current_status=TaskStatus.COMPLETED,
        reviewed_by=reviewer_id,
        reviewed_at=at or utc_now(),
    )


def reject_review(task: Task, reviewer_id: str, at: datetime | None = None) -> Task:
    """Send submitted work back to the assignee; the task returns to work-in-progress."""
    _check_reviewer(task, reviewer_id)
    return replace(
        task,
        ready_for_review=False,
        review_accepted=False,
        current_status=TaskStatus.IN_PROGRESS,
        reviewed_by=reviewer_id,
        reviewed_at=at or utc_now(),
    )


def reassign(task: Task, user_ids: list[str] | tuple[str, ...]) -> Task:
    """New assignees; acceptance is reset and the task leaves the rejected state."""
    assignees = tuple(dict.fromkeys(u for u in user_ids if u))
    if not assignees:
        raise InvalidTransition("select at least one user to reassign the task to")
    return replace(
        task,
        assigned_to=assignees,
        accepted=False,
        decline_reason=None,
        accepted_by=None,
        accepted_at=None,
        current_status=TaskStatus.NOT_STARTED,
    )


def delegate(
        task: Task,
        from_user_id: str,
        to_user_id: str,
        reason: str | None = None,
        at: datetime | None = None,
) -> Task:
    if from_user_id not in task.assigned_to:
        raise InvalidTransition(f"user {from_user_id} is not an assignee of task {task.id}")
    if to_user_id == from_user_id:
        raise InvalidTransition("cannot delegate a task to yourself")

    assignees = [u for u in task.assigned_to if u != from_user_id]
    if to_user_id not in assignees:
        assignees.append(to_user_id)

    entry = Delegation(
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        reason=reason,
        timestamp=at or utc_now(),
    )
    logger.debug("Task %s delegated %s -> %s", task.id, from_user_id, to_user_id)
    return replace(
        task,
        assigned_to=tuple(assignees),
        accepted=False,
        decline_reason=None,
        accepted_by=None,
        accepted_at=None,
        delegation_history=task.delegation_history + (entry,),
        original_assigned_by=task.original_assigned_by or task.assigned_by,
    )


def toggle_star(task: Task, user_id: str) -> Task:
    if user_id in task.starred_by_users:
        return replace(task, starred_by_users=task.starred_by_users - {user_id})
    return replace(task, starred_by_users=task.starred_by_users | {user_id})
