# src/buildtrack/tasks/grouping.py

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum

from .task_models import Priority, TaskNode, as_utc

logger = logging.getLogger(__name__)

UNKNOWN_PRIORITY_RANK = 5

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SortDirection(StrEnum):
    """
    Direction of a display sort toggle.

    DESC puts the most pressing work first (most urgent priority, earliest due
    date); ASC is the reverse. Tasks without a due date stay last either way.
    """

    ASC = "asc"
    DESC = "desc"


@dataclass(slots=True)
class TaskGroup:
    parent: TaskNode
    children: list[TaskNode] = field(default_factory=list)


@dataclass(slots=True)
class TaskGrouping:
    groups: list[TaskGroup] = field(default_factory=list)
    standalone: list[TaskNode] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.groups) + sum(len(g.children) for g in self.groups) + len(self.standalone)


def priority_rank(node: TaskNode) -> int:
    p = node.task.priority
    if isinstance(p, Priority):
        return p.rank
    return UNKNOWN_PRIORITY_RANK


def _due_key(node: TaskNode) -> tuple[int, float]:
    due = node.task.due_date
    if due is None:
        return (1, 0.0)
    return (0, as_utc(due).timestamp())


def sort_by_urgency(nodes: Iterable[TaskNode]) -> list[TaskNode]:
    """Priority rank ascending, then due date ascending (missing due dates last)."""
    return sorted(nodes, key=lambda n: (priority_rank(n), _due_key(n)))


def sort_by_created(nodes: Iterable[TaskNode]) -> list[TaskNode]:
    """Newest first; records without a creation time go last."""
    return sorted(nodes, key=lambda n: as_utc(n.task.created_at or _EPOCH).timestamp(), reverse=True)


def sort_for_display(
        nodes: Iterable[TaskNode],
        priority: SortDirection | None = None,
        due_date: SortDirection | None = None,
) -> list[TaskNode]:
    """
    Apply the list screen's sort toggles.

    Priority is the primary key and due date the secondary one, each only when
    its toggle is on. With both toggles off the list is ordered newest first.
    """
    nodes = list(nodes)
    if priority is None and due_date is None:
        return sort_by_created(nodes)

    def key(n: TaskNode) -> tuple:
        parts: list = []
        if priority is not None:
            rank = priority_rank(n)
            parts.append(rank if priority == SortDirection.DESC else -rank)
        if due_date is not None:
            missing, ts = _due_key(n)
            parts.append((missing, ts if due_date == SortDirection.DESC else -ts))
        return tuple(parts)

    return sorted(nodes, key=key)


def group_by_parent(
        nodes: Iterable[TaskNode],
        *,
        require_same_assignees: bool = False,
) -> TaskGrouping:
    """
    Nest sub-tasks under their parent when the parent is in the same list.

    Parents keep the order of their first appearance and children keep input
    order. A sub-task whose parent is absent (filtered out of the current view)
    goes to `standalone` instead of being dropped. With require_same_assignees,
    a sub-task handed to a different set of people is also shown standalone.
    """
    nodes = list(nodes)

    groups: dict[str, TaskGroup] = {}
    for n in nodes:
        if n.parent_id is None and n.id not in groups:
            groups[n.id] = TaskGroup(parent=n)

    out = TaskGrouping(groups=list(groups.values()))
    for n in nodes:
        if n.parent_id is None:
            continue
        group = groups.get(n.parent_id)
        if group is None:
            out.standalone.append(n)
            continue
        if require_same_assignees and set(n.task.assigned_to) != set(group.parent.task.assigned_to):
            out.standalone.append(n)
            continue
        group.children.append(n)

    logger.debug("Grouped %d nodes: groups=%d standalone=%d", len(nodes), len(out.groups), len(out.standalone))
    return out
