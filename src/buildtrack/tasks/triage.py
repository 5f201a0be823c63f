# src/buildtrack/tasks/triage.py

from __future__ import annotations

"""
Triage classifier.

Partitions the tasks visible to a user into three mailboxes and, inside each
mailbox, into status buckets:

- MY_TASKS: tasks the user created for themself (plus the user's own tasks that
  an assignee declined),
- INBOX:    tasks assigned to the user by someone else,
- OUTBOX:   tasks the user assigned to others.

Mailboxes are three independent queries over the same records, so one task may
show up in more than one of them. Inside a mailbox the bucket rules are an
ordered table evaluated top to bottom; the first match wins and a task that
matches nothing is simply not shown.

The "reviewing" bucket is cross-wired: it always shows work waiting on the
*other* party. INBOX/reviewing holds submissions the user must review (tasks the
user created); OUTBOX/reviewing holds the user's own submissions waiting for the
creator.

Everything here is pure: no I/O, no shared state, and `now` is read once per call.
"""

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from .lifecycle import FULL, invariant_violations, is_overdue, is_rejected, is_self_assigned, utc_now
from .task_models import NodeKind, Task, TaskNode

logger = logging.getLogger(__name__)


class Mailbox(StrEnum):
    MY_TASKS = "my_tasks"
    INBOX = "inbox"
    OUTBOX = "outbox"


class Bucket(StrEnum):
    RECEIVED = "received"
    ASSIGNED = "assigned"
    WIP = "wip"
    REVIEWING = "reviewing"
    DONE = "done"
    OVERDUE = "overdue"
    REJECTED = "rejected"


Predicate = Callable[[Task, str, datetime], bool]


@dataclass(slots=True, frozen=True)
class BucketRule:
    bucket: Bucket
    predicate: Predicate


@dataclass(slots=True, frozen=True)
class Classification:
    node: TaskNode
    mailbox: Mailbox
    bucket: Bucket


# ---- membership ----


def _only_me(task: Task, me: str) -> bool:
    return set(task.assigned_to) == {me}


def mailbox_member(task: Task, user_id: str, mailbox: Mailbox) -> bool:
    me = str(user_id)
    assigned_to_me = me in task.assigned_to
    created_by_me = task.assigned_by == me

    if mailbox == Mailbox.MY_TASKS:
        return (assigned_to_me and created_by_me) or (created_by_me and is_rejected(task))
    if mailbox == Mailbox.INBOX:
        return assigned_to_me and not created_by_me
    if mailbox == Mailbox.OUTBOX:
        return created_by_me and not _only_me(task, me) and not is_rejected(task)
    return False


# ---- bucket predicates ----


def _rejected(task: Task, me: str, now: datetime) -> bool:
    return is_rejected(task)


def _overdue(task: Task, me: str, now: datetime) -> bool:
    return task.completion_percentage < FULL and is_overdue(task, now) and not is_rejected(task)


def _awaiting_acceptance(task: Task, me: str, now: datetime) -> bool:
    # accepted=None is a record nobody has initialised, not a pending one.
    return task.accepted is False and not task.decline_reason and not is_rejected(task)


def _in_progress(task: Task, now: datetime) -> bool:
    pct = task.completion_percentage
    return (
        not is_overdue(task, now)
        and not is_rejected(task)
        and (pct < FULL or (pct == FULL and not task.ready_for_review))
        and not task.review_accepted
    )


def _wip(task: Task, me: str, now: datetime) -> bool:
    return task.accepted is True and _in_progress(task, now)


def _wip_self(task: Task, me: str, now: datetime) -> bool:
    # Self-assigned work never waits for acceptance.
    return (task.accepted is True or is_self_assigned(task)) and _in_progress(task, now)


def _done(task: Task, me: str, now: datetime) -> bool:
    return task.completion_percentage == FULL and task.review_accepted is True


def _awaiting_review(task: Task) -> bool:
    return task.completion_percentage == FULL and task.ready_for_review and not task.review_accepted


def _reviewing_inbox(task: Task, me: str, now: datetime) -> bool:
    # Work I created that somebody else submitted to me.
    return task.assigned_by == me and not _only_me(task, me) and _awaiting_review(task)


def _reviewing_outbox(task: Task, me: str, now: datetime) -> bool:
    # Work assigned to me that I submitted to its creator.
    return task.assigned_by != me and me in task.assigned_to and _awaiting_review(task)


BUCKET_RULES: dict[Mailbox, tuple[BucketRule, ...]] = {
    Mailbox.MY_TASKS: (
        BucketRule(Bucket.REJECTED, _rejected),
        BucketRule(Bucket.OVERDUE, _overdue),
        BucketRule(Bucket.WIP, _wip_self),
        BucketRule(Bucket.DONE, _done),
    ),
    Mailbox.INBOX: (
        BucketRule(Bucket.OVERDUE, _overdue),
        BucketRule(Bucket.RECEIVED, _awaiting_acceptance),
        BucketRule(Bucket.WIP, _wip),
        BucketRule(Bucket.DONE, _done),
    ),
    Mailbox.OUTBOX: (
        BucketRule(Bucket.OVERDUE, _overdue),
        BucketRule(Bucket.ASSIGNED, _awaiting_acceptance),
        BucketRule(Bucket.WIP, _wip),
        BucketRule(Bucket.DONE, _done),
    ),
}

# Cross-wired queries; disjoint from the owning mailbox's membership by construction.
REVIEW_QUERIES: dict[Mailbox, Predicate] = {
    Mailbox.INBOX: _reviewing_inbox,
    Mailbox.OUTBOX: _reviewing_outbox,
}

# Display order of the buckets offered by each mailbox.
MAILBOX_BUCKETS: dict[Mailbox, tuple[Bucket, ...]] = {
    Mailbox.MY_TASKS: (Bucket.REJECTED, Bucket.WIP, Bucket.DONE, Bucket.OVERDUE),
    Mailbox.INBOX: (Bucket.RECEIVED, Bucket.WIP, Bucket.REVIEWING, Bucket.DONE, Bucket.OVERDUE),
    Mailbox.OUTBOX: (Bucket.ASSIGNED, Bucket.WIP, Bucket.REVIEWING, Bucket.DONE, Bucket.OVERDUE),
}


def bucket_for(
        item: Task | TaskNode,
        user_id: str,
        mailbox: Mailbox,
        now: datetime | None = None,
) -> Bucket | None:
    """
    The single bucket `item` lands in for `mailbox`, or None if it is not shown there.

    Records breaking the percentage invariants are never shown.
    """
    task = item.task if isinstance(item, TaskNode) else item
    me = str(user_id)
    if now is None:
        now = utc_now()

    if invariant_violations(task):
        return None

    review_query = REVIEW_QUERIES.get(mailbox)
    if review_query is not None and review_query(task, me, now):
        return Bucket.REVIEWING

    if not mailbox_member(task, me, mailbox):
        return None

    for rule in BUCKET_RULES[mailbox]:
        if rule.predicate(task, me, now):
            return rule.bucket
    return None


# ---- tree walk ----


def flatten(tasks: Iterable[Task]) -> list[TaskNode]:
    """
    Depth-first walk over the tasks and all nested sub-tasks.

    A record can be present twice (once in the flat list, once inside its
    parent's sub_tasks); the first occurrence wins. Iterative, so depth is only
    bounded by memory.
    """
    out: list[TaskNode] = []
    seen: set[str] = set()

    roots = list(tasks)
    stack: list[tuple[Task, str | None, int]] = [
        (t, t.parent_task_id or None, 0 if t.is_top_level else 1) for t in reversed(roots)
    ]

    while stack:
        task, parent_id, depth = stack.pop()
        if task.id:
            if task.id in seen:
                continue
            seen.add(task.id)

        kind = NodeKind.TASK if parent_id is None else NodeKind.SUBTASK
        out.append(TaskNode(task=task, kind=kind, parent_id=parent_id, depth=depth))

        for sub in reversed(task.sub_tasks):
            stack.append((sub, sub.parent_task_id or task.id or None, depth + 1))

    return out


def _as_nodes(items: Iterable[Task | TaskNode]) -> list[TaskNode]:
    items = list(items)
    if all(isinstance(i, TaskNode) for i in items):
        return items  # type: ignore[return-value]
    return flatten(i.task if isinstance(i, TaskNode) else i for i in items)


# ---- classification ----


def classify(
        tasks: Iterable[Task],
        user_id: str,
        now: datetime | None = None,
) -> list[Classification]:
    """
    Every (node, mailbox, bucket) placement for the user, in walk order then mailbox order.

    A node yields at most one entry per mailbox.
    """
    if now is None:
        now = utc_now()
    out: list[Classification] = []
    for node in flatten(tasks):
        for mailbox in Mailbox:
            bucket = bucket_for(node.task, user_id, mailbox, now)
            if bucket is not None:
                out.append(Classification(node=node, mailbox=mailbox, bucket=bucket))
    return out


@dataclass(slots=True)
class TriageBoard:
    """Classification results for one user at one instant, indexed for the views."""

    user_id: str
    now: datetime
    nodes: list[TaskNode]
    entries: list[Classification]
    _members: dict[Mailbox, list[TaskNode]] = field(default_factory=dict)
    _views: dict[tuple[Mailbox, Bucket], list[TaskNode]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for mailbox in Mailbox:
            self._members[mailbox] = [n for n in self.nodes if mailbox_member(n.task, self.user_id, mailbox)]
        for entry in self.entries:
            self._views.setdefault((entry.mailbox, entry.bucket), []).append(entry.node)

    def view(self, mailbox: Mailbox, bucket: Bucket) -> list[TaskNode]:
        return list(self._views.get((mailbox, bucket), []))

    def members(self, mailbox: Mailbox) -> list[TaskNode]:
        return list(self._members.get(mailbox, []))

    def total(self, mailbox: Mailbox) -> int:
        return len(self._members.get(mailbox, []))

    def counts(self) -> dict[Mailbox, dict[Bucket, int]]:
        return {
            mailbox: {b: len(self._views.get((mailbox, b), [])) for b in buckets}
            for mailbox, buckets in MAILBOX_BUCKETS.items()
        }

    def placements(self, task_id: str) -> list[tuple[Mailbox, Bucket]]:
        return [(e.mailbox, e.bucket) for e in self.entries if e.node.id == task_id]


def build_board(tasks: Iterable[Task], user_id: str, now: datetime | None = None) -> TriageBoard:
    if now is None:
        now = utc_now()
    tasks = list(tasks)
    nodes = flatten(tasks)
    entries = classify(tasks, user_id, now)
    logger.debug(
        "Triage user=%s nodes=%d placements=%d", user_id, len(nodes), len(entries)
    )
    return TriageBoard(user_id=str(user_id), now=now, nodes=nodes, entries=entries)


# ---- composite views ----

MY_WORK_BUCKETS = (Bucket.OVERDUE, Bucket.WIP, Bucket.DONE)


def my_work_view(
        tasks: Iterable[Task],
        user_id: str,
        bucket: Bucket,
        now: datetime | None = None,
) -> list[TaskNode]:
    """
    Everything assigned to the user (My Tasks + Inbox) in one bucket.

    "done" also counts Outbox placements, so finished work the user shares with
    others is listed too. Only overdue / wip / done are offered here.
    """
    if bucket not in MY_WORK_BUCKETS:
        return []
    if now is None:
        now = utc_now()
    me = str(user_id)

    mailboxes: Sequence[Mailbox] = (Mailbox.MY_TASKS, Mailbox.INBOX)
    if bucket == Bucket.DONE:
        mailboxes = (Mailbox.MY_TASKS, Mailbox.INBOX, Mailbox.OUTBOX)

    out: list[TaskNode] = []
    for node in flatten(tasks):
        if me not in node.task.assigned_to:
            continue
        if any(bucket_for(node.task, me, mb, now) == bucket for mb in mailboxes):
            out.append(node)
    return out


def only_self_assigned(items: Iterable[Task | TaskNode], user_id: str) -> list[TaskNode]:
    me = str(user_id)
    return [n for n in _as_nodes(items) if me in n.task.assigned_to and n.task.assigned_by == me]


def starred_for(tasks: Iterable[Task], user_id: str) -> list[TaskNode]:
    """The user's pinned "today" list."""
    me = str(user_id)
    return [n for n in flatten(tasks) if me in n.task.starred_by_users]
