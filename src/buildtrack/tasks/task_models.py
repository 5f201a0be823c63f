# src/buildtrack/tasks/task_models.py

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class TaskStatus(StrEnum):
    """
    Stored task status.

    Notes:
    - "rejected" stays on the record until the task is reassigned; the
      classifier tolerates it being combined with a fresh assignee list.
    """

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.NOT_STARTED
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return cls.NOT_STARTED


class Priority(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Lower rank = more urgent."""
        return _PRIORITY_RANK[self]

    @classmethod
    def from_db(cls, raw: str | None) -> Priority:
        if not raw:
            return cls.MEDIUM
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return cls.MEDIUM


_PRIORITY_RANK = {
    Priority.CRITICAL: 1,
    Priority.HIGH: 2,
    Priority.MEDIUM: 3,
    Priority.LOW: 4,
}


class NodeKind(StrEnum):
    TASK = "task"
    SUBTASK = "subtask"


@dataclass(slots=True, frozen=True)
class Delegation:
    from_user_id: str
    to_user_id: str
    reason: str | None
    timestamp: datetime | None


@dataclass(slots=True, frozen=True)
class Task:
    """
    One task record. Sub-tasks use the same type: they carry a parent_task_id
    and may nest their own sub_tasks to any depth.
    """

    id: str
    project_id: str
    assigned_by: str
    assigned_to: tuple[str, ...] = ()

    title: str = ""
    priority: Priority = Priority.MEDIUM
    parent_task_id: str | None = None

    current_status: TaskStatus = TaskStatus.NOT_STARTED
    completion_percentage: int = 0
    accepted: bool | None = None
    decline_reason: str | None = None
    ready_for_review: bool = False
    review_accepted: bool = False

    due_date: datetime | None = None
    created_at: datetime | None = None

    accepted_by: str | None = None
    accepted_at: datetime | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    original_assigned_by: str | None = None

    sub_tasks: tuple[Task, ...] = ()
    starred_by_users: frozenset[str] = frozenset()
    delegation_history: tuple[Delegation, ...] = ()

    @property
    def is_top_level(self) -> bool:
        return not self.parent_task_id

    def is_assigned_to(self, user_id: str) -> bool:
        return str(user_id) in self.assigned_to


@dataclass(slots=True, frozen=True)
class TaskNode:
    """
    A task as seen by the classifier after walking the sub-task tree.

    parent_id is the record's own parent_task_id when it has one, otherwise the
    id of the task whose sub_tasks array contained it.
    """

    task: Task
    kind: NodeKind
    parent_id: str | None = None
    depth: int = 0

    @property
    def id(self) -> str:
        return self.task.id

    @classmethod
    def of(cls, task: Task) -> TaskNode:
        if task.is_top_level:
            return cls(task=task, kind=NodeKind.TASK)
        return cls(task=task, kind=NodeKind.SUBTASK, parent_id=task.parent_task_id, depth=1)


# ---- record parsing ----


def _pick(record: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for k in keys:
        if k in record and record[k] is not None:
            return record[k]
    return default


def as_utc(dt: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_timestamp(raw: Any) -> datetime | None:
    """ISO-8601 string (a trailing "Z" is accepted), epoch seconds, or datetime. Naive values are UTC."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        dt = raw
    elif isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return datetime.fromtimestamp(float(raw), tz=timezone.utc)
    else:
        s = str(raw).strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            logger.debug("Unparseable timestamp %r", raw)
            return None
    return as_utc(dt)


def _as_id(raw: Any) -> str | None:
    if raw is None:
        return None
    s = str(raw).strip()
    return s or None


def _as_ids(raw: Any) -> tuple[str, ...]:
    if isinstance(raw, str) or not isinstance(raw, Iterable):
        return ()
    out: list[str] = []
    for item in raw:
        s = _as_id(item)
        if s and s not in out:
            out.append(s)
    return tuple(out)


def _as_percentage(raw: Any) -> int:
    try:
        return int(round(float(raw)))
    except (TypeError, ValueError):
        return 0


def _as_tristate(raw: Any) -> bool | None:
    if raw is None:
        return None
    if isinstance(raw, str):
        v = raw.strip().lower()
        if v in {"true", "1", "yes"}:
            return True
        if v in {"false", "0", "no"}:
            return False
        return None
    return bool(raw)


def _delegation_from_record(record: Mapping[str, Any]) -> Delegation | None:
    from_id = _as_id(_pick(record, "fromUserId", "from_user_id"))
    to_id = _as_id(_pick(record, "toUserId", "to_user_id"))
    if not from_id or not to_id:
        return None
    reason = _pick(record, "reason")
    return Delegation(
        from_user_id=from_id,
        to_user_id=to_id,
        reason=str(reason) if reason else None,
        timestamp=parse_timestamp(_pick(record, "timestamp")),
    )


def task_from_record(record: Mapping[str, Any], *, parent_task_id: str | None = None) -> Task:
    """
    Build a Task from an app-style (camelCase) or database-style (snake_case) record.

    Bad values are normalized rather than rejected.
    """
    task_id = _as_id(_pick(record, "id")) or ""
    # Nested sub-tasks in the legacy table point at the root task and keep their
    # direct parent in parent_sub_task_id.
    own_parent = _as_id(
        _pick(record, "parentSubTaskId", "parent_sub_task_id", "parentTaskId", "parent_task_id")
    )
    parent = own_parent or parent_task_id

    raw_subs = _pick(record, "subTasks", "sub_tasks", "children", default=[]) or []
    subs: list[Task] = []
    if isinstance(raw_subs, Iterable) and not isinstance(raw_subs, (str, Mapping)):
        for sub in raw_subs:
            if isinstance(sub, Mapping):
                subs.append(task_from_record(sub, parent_task_id=task_id or None))

    delegations: list[Delegation] = []
    for entry in _pick(record, "delegationHistory", "delegation_history", default=[]) or []:
        if isinstance(entry, Mapping):
            d = _delegation_from_record(entry)
            if d is not None:
                delegations.append(d)

    decline = _pick(record, "declineReason", "decline_reason")

    return Task(
        id=task_id,
        project_id=_as_id(_pick(record, "projectId", "project_id")) or "",
        assigned_by=_as_id(_pick(record, "assignedBy", "assigned_by")) or "",
        assigned_to=_as_ids(_pick(record, "assignedTo", "assigned_to", default=[])),
        title=str(_pick(record, "title", default="") or ""),
        priority=Priority.from_db(_pick(record, "priority")),
        parent_task_id=parent,
        current_status=TaskStatus.from_db(_pick(record, "currentStatus", "current_status")),
        completion_percentage=_as_percentage(
            _pick(record, "completionPercentage", "completion_percentage", default=0)
        ),
        accepted=_as_tristate(_pick(record, "accepted")),
        decline_reason=str(decline) if decline else None,
        ready_for_review=bool(_pick(record, "readyForReview", "ready_for_review", default=False)),
        review_accepted=bool(_pick(record, "reviewAccepted", "review_accepted", default=False)),
        due_date=parse_timestamp(_pick(record, "dueDate", "due_date")),
        created_at=parse_timestamp(_pick(record, "createdAt", "created_at")),
        accepted_by=_as_id(_pick(record, "acceptedBy", "accepted_by")),
        accepted_at=parse_timestamp(_pick(record, "acceptedAt", "accepted_at")),
        reviewed_by=_as_id(_pick(record, "reviewedBy", "reviewed_by")),
        reviewed_at=parse_timestamp(_pick(record, "reviewedAt", "reviewed_at")),
        original_assigned_by=_as_id(_pick(record, "originalAssignedBy", "original_assigned_by")),
        sub_tasks=tuple(subs),
        starred_by_users=frozenset(_as_ids(_pick(record, "starredByUsers", "starred_by_users", default=[]))),
        delegation_history=tuple(delegations),
    )


def tasks_from_records(records: Iterable[Any]) -> list[Task]:
    out: list[Task] = []
    for rec in records:
        if not isinstance(rec, Mapping):
            logger.warning("Skipping non-object task record: %r", type(rec).__name__)
            continue
        out.append(task_from_record(rec))
    return out
