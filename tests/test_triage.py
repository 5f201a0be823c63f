# tests/test_triage.py

from __future__ import annotations

from collections import Counter
from datetime import timedelta

import pytest

from buildtrack.tasks.lifecycle import update_progress
from buildtrack.tasks.task_models import NodeKind, TaskStatus
from buildtrack.tasks.triage import (
    Bucket,
    Mailbox,
    bucket_for,
    build_board,
    classify,
    flatten,
    mailbox_member,
    my_work_view,
    only_self_assigned,
    starred_for,
)

from .fakes import make_task


def _placements(tasks, user_id, now):
    return {(c.node.id, c.mailbox, c.bucket) for c in classify(tasks, user_id, now)}


def _variety(now):
    """A spread of lifecycle situations between u1, u2 and u3."""
    past = now - timedelta(days=1)
    future = now + timedelta(days=3)
    return [
        make_task(assigned_by="u1", assigned_to=["u1"]),
        make_task(assigned_by="u1", assigned_to=["u1"], completion_percentage=30, due_date=past),
        make_task(assigned_by="u1", assigned_to=["u1"], completion_percentage=100, review_accepted=True),
        make_task(assigned_by="u1", assigned_to=["u1"], current_status=TaskStatus.REJECTED),
        make_task(assigned_by="u1", assigned_to=["u2"], accepted=False),
        make_task(assigned_by="u1", assigned_to=["u2"], accepted=True, completion_percentage=60, due_date=future),
        make_task(assigned_by="u1", assigned_to=["u2"], accepted=True, completion_percentage=40, due_date=past),
        make_task(
            assigned_by="u1", assigned_to=["u2"], accepted=True, completion_percentage=100, ready_for_review=True
        ),
        make_task(assigned_by="u1", assigned_to=["u2"], completion_percentage=100, review_accepted=True),
        make_task(assigned_by="u1", assigned_to=["u2"], current_status=TaskStatus.REJECTED, decline_reason="no"),
        make_task(assigned_by="u2", assigned_to=["u1"], accepted=False),
        make_task(assigned_by="u2", assigned_to=["u1", "u3"], accepted=True, completion_percentage=10),
        make_task(assigned_by="u3", assigned_to=["u2"], accepted=True),
        make_task(assigned_by="u1", assigned_to=["u2"], accepted=True, completion_percentage=100),
    ]


# ---- scenarios ----


def test_self_assigned_completion_lands_in_my_tasks_done(now) -> None:
    task = make_task(assigned_by="u1", assigned_to=["u1"], completion_percentage=100, review_accepted=True)

    assert _placements([task], "u1", now) == {(task.id, Mailbox.MY_TASKS, Bucket.DONE)}


def test_rejected_task_shows_in_creators_my_tasks_not_outbox(now) -> None:
    task = make_task(assigned_by="u1", assigned_to=["u2"], current_status=TaskStatus.REJECTED)

    assert _placements([task], "u1", now) == {(task.id, Mailbox.MY_TASKS, Bucket.REJECTED)}


def test_overdue_task_in_assignees_inbox_and_creators_outbox(now) -> None:
    task = make_task(
        assigned_by="u1",
        assigned_to=["u2"],
        due_date=now - timedelta(days=1),
        completion_percentage=40,
    )

    assert _placements([task], "u2", now) == {(task.id, Mailbox.INBOX, Bucket.OVERDUE)}
    assert _placements([task], "u1", now) == {(task.id, Mailbox.OUTBOX, Bucket.OVERDUE)}


def test_naive_now_and_naive_due_dates_are_read_as_utc(now) -> None:
    task = make_task(
        assigned_by="u1",
        assigned_to=["u2"],
        due_date=now - timedelta(days=1),
        completion_percentage=40,
    )
    naive_now = now.replace(tzinfo=None)

    assert bucket_for(task, "u2", Mailbox.INBOX, naive_now) == Bucket.OVERDUE
    assert build_board([task], "u1", naive_now).view(Mailbox.OUTBOX, Bucket.OVERDUE)[0].id == task.id

    naive_due = make_task(
        assigned_by="u1",
        assigned_to=["u2"],
        accepted=True,
        due_date=(now + timedelta(days=1)).replace(tzinfo=None),
        completion_percentage=40,
    )
    assert _placements([naive_due], "u2", now) == {(naive_due.id, Mailbox.INBOX, Bucket.WIP)}


def test_review_is_cross_wired(now) -> None:
    task = make_task(
        assigned_by="u1",
        assigned_to=["u2"],
        accepted=True,
        completion_percentage=100,
        ready_for_review=True,
    )

    assert _placements([task], "u1", now) == {(task.id, Mailbox.INBOX, Bucket.REVIEWING)}
    assert _placements([task], "u2", now) == {(task.id, Mailbox.OUTBOX, Bucket.REVIEWING)}


def test_received_and_assigned_need_an_explicit_false(now) -> None:
    pending = make_task(assigned_by="u1", assigned_to=["u2"], accepted=False)
    untouched = make_task(assigned_by="u1", assigned_to=["u2"], accepted=None)

    assert bucket_for(pending, "u2", Mailbox.INBOX, now) == Bucket.RECEIVED
    assert bucket_for(pending, "u1", Mailbox.OUTBOX, now) == Bucket.ASSIGNED
    assert bucket_for(untouched, "u2", Mailbox.INBOX, now) is None


def test_rejected_with_fresh_assignees_is_classified_by_the_rules(now) -> None:
    # Reassigned without clearing the stored status.
    task = make_task(assigned_by="u1", assigned_to=["u3"], accepted=False, current_status=TaskStatus.REJECTED)

    assert bucket_for(task, "u1", Mailbox.MY_TASKS, now) == Bucket.REJECTED
    assert bucket_for(task, "u1", Mailbox.OUTBOX, now) is None
    assert bucket_for(task, "u3", Mailbox.INBOX, now) is None


def test_self_assigned_wip_without_acceptance(now) -> None:
    task = make_task(assigned_by="u1", assigned_to=["u1"], accepted=False, completion_percentage=20)

    assert bucket_for(task, "u1", Mailbox.MY_TASKS, now) == Bucket.WIP


def test_auto_reviewed_self_task_is_done(now) -> None:
    task = update_progress(make_task(assigned_by="u1", assigned_to=["u1"]), 100)

    assert bucket_for(task, "u1", Mailbox.MY_TASKS, now) == Bucket.DONE


def test_invariant_violation_matches_no_bucket(now) -> None:
    broken = make_task(assigned_by="u1", assigned_to=["u2"], completion_percentage=70, review_accepted=True)

    assert classify([broken], "u1", now) == []
    assert classify([broken], "u2", now) == []
    # Membership is unaffected; only the status views exclude it.
    assert mailbox_member(broken, "u2", Mailbox.INBOX)


def test_subtasks_are_classified_on_their_own_fields(now) -> None:
    child = make_task(id="s1", assigned_by="u2", assigned_to=["u3"], accepted=False)
    parent = make_task(id="t1", assigned_by="u1", assigned_to=["u2"], accepted=True, sub_tasks=[child])

    assert _placements([parent], "u3", now) == {("s1", Mailbox.INBOX, Bucket.RECEIVED)}
    assert _placements([parent], "u2", now) == {
        ("t1", Mailbox.INBOX, Bucket.WIP),
        ("s1", Mailbox.OUTBOX, Bucket.ASSIGNED),
    }


# ---- properties ----


@pytest.mark.parametrize("user_id", ["u1", "u2", "u3"])
def test_at_most_one_bucket_per_mailbox(now, user_id) -> None:
    entries = classify(_variety(now), user_id, now)
    per_mailbox = Counter((c.node.id, c.mailbox) for c in entries)

    assert entries
    assert max(per_mailbox.values()) == 1


def test_self_assigned_only_to_me_never_in_inbox_or_outbox(now) -> None:
    tasks = [t for t in _variety(now) if t.assigned_to == ("u1",) and t.assigned_by == "u1"]
    entries = classify(tasks, "u1", now)

    assert {c.mailbox for c in entries} == {Mailbox.MY_TASKS}
    assert {c.node.id for c in entries} == {t.id for t in tasks}


def test_overdue_wins_in_every_mailbox_unless_rejected(now) -> None:
    past = now - timedelta(minutes=1)
    tasks = [
        make_task(assigned_by="u1", assigned_to=["u1"], due_date=past),
        make_task(assigned_by="u1", assigned_to=["u2"], accepted=False, due_date=past),
        make_task(assigned_by="u1", assigned_to=["u2"], accepted=True, completion_percentage=99, due_date=past),
        make_task(assigned_by="u2", assigned_to=["u1"], accepted=True, due_date=past),
    ]
    for user_id in ("u1", "u2"):
        for task in tasks:
            for mailbox in Mailbox:
                if mailbox_member(task, user_id, mailbox):
                    assert bucket_for(task, user_id, mailbox, now) == Bucket.OVERDUE

    rejected = make_task(assigned_by="u1", assigned_to=["u2"], current_status=TaskStatus.REJECTED, due_date=past)
    assert bucket_for(rejected, "u1", Mailbox.MY_TASKS, now) == Bucket.REJECTED


def test_overdue_follows_the_clock(now) -> None:
    task = make_task(assigned_by="u1", assigned_to=["u2"], accepted=True, due_date=now)

    assert bucket_for(task, "u2", Mailbox.INBOX, now) == Bucket.WIP
    assert bucket_for(task, "u2", Mailbox.INBOX, now + timedelta(seconds=1)) == Bucket.OVERDUE


def test_reviewing_never_overlaps_wip(now) -> None:
    tasks = _variety(now)
    for user_id in ("u1", "u2"):
        board = build_board(tasks, user_id, now)
        for mailbox in (Mailbox.INBOX, Mailbox.OUTBOX):
            reviewing = {n.id for n in board.view(mailbox, Bucket.REVIEWING)}
            wip = {n.id for n in board.view(mailbox, Bucket.WIP)}
            assert not reviewing & wip


def test_classification_is_idempotent(now) -> None:
    tasks = _variety(now)
    assert classify(tasks, "u1", now) == classify(tasks, "u1", now)


def test_submitted_but_not_submitted_for_review_stays_wip(now) -> None:
    task = make_task(assigned_by="u1", assigned_to=["u2"], accepted=True, completion_percentage=100)

    assert bucket_for(task, "u2", Mailbox.INBOX, now) == Bucket.WIP
    assert bucket_for(task, "u1", Mailbox.OUTBOX, now) == Bucket.WIP


# ---- tree walk ----


def test_flatten_walks_depth_first_and_dedups_dual_representation() -> None:
    grandchild = make_task(id="g1", parent_task_id="s1")
    child = make_task(id="s1", parent_task_id="t1", sub_tasks=[grandchild])
    parent = make_task(id="t1", sub_tasks=[child])
    other = make_task(id="t2")

    # The child is also present in the flat list, as the database join returns it.
    nodes = flatten([parent, other, child])

    assert [n.id for n in nodes] == ["t1", "s1", "g1", "t2"]
    assert [n.kind for n in nodes] == [NodeKind.TASK, NodeKind.SUBTASK, NodeKind.SUBTASK, NodeKind.TASK]
    assert [n.parent_id for n in nodes] == [None, "t1", "s1", None]
    assert [n.depth for n in nodes] == [0, 1, 2, 0]


def test_flatten_uses_container_when_record_has_no_parent() -> None:
    child = make_task(id="s1")
    nodes = flatten([make_task(id="t1", sub_tasks=[child])])

    assert nodes[1].parent_id == "t1"
    assert nodes[1].kind == NodeKind.SUBTASK


def test_flatten_handles_deep_trees() -> None:
    node = make_task(id="n0")
    for i in range(1, 3000):
        node = make_task(id=f"n{i}", sub_tasks=[node])

    assert len(flatten([node])) == 3000


# ---- board and composite views ----


def test_board_counts_and_totals(now) -> None:
    board = build_board(_variety(now), "u1", now)
    counts = board.counts()

    assert counts[Mailbox.MY_TASKS] == {Bucket.REJECTED: 2, Bucket.WIP: 1, Bucket.DONE: 1, Bucket.OVERDUE: 1}
    assert counts[Mailbox.INBOX][Bucket.RECEIVED] == 1
    assert counts[Mailbox.INBOX][Bucket.WIP] == 1
    assert counts[Mailbox.INBOX][Bucket.REVIEWING] == 1
    assert counts[Mailbox.OUTBOX][Bucket.ASSIGNED] == 1
    assert counts[Mailbox.OUTBOX][Bucket.WIP] == 2
    assert counts[Mailbox.OUTBOX][Bucket.OVERDUE] == 1
    assert counts[Mailbox.OUTBOX][Bucket.DONE] == 1
    assert board.total(Mailbox.INBOX) == 2


@pytest.mark.parametrize("user_id", ["u1", "u2", "u3"])
def test_board_views_agree_with_classify(now, user_id) -> None:
    tasks = _variety(now)
    board = build_board(tasks, user_id, now)

    assert board.entries == classify(tasks, user_id, now)
    for entry in board.entries:
        assert entry.node in board.view(entry.mailbox, entry.bucket)


def test_board_placements(now) -> None:
    task = make_task(assigned_by="u1", assigned_to=["u1", "u2"], accepted=True, completion_percentage=5)
    board = build_board([task], "u1", now)

    # Self-assigned with another assignee: also visible to u1 as delegated work.
    assert board.placements(task.id) == [(Mailbox.MY_TASKS, Bucket.WIP), (Mailbox.OUTBOX, Bucket.WIP)]


def test_my_work_view(now) -> None:
    past = now - timedelta(days=1)
    mine = make_task(id="a", assigned_by="u1", assigned_to=["u1"], completion_percentage=10, due_date=past)
    given = make_task(id="b", assigned_by="u2", assigned_to=["u1"], accepted=True, due_date=past)
    wip = make_task(id="c", assigned_by="u2", assigned_to=["u1"], accepted=True)
    delegated = make_task(id="d", assigned_by="u1", assigned_to=["u2"], accepted=True, due_date=past)
    shared_done = make_task(
        id="e", assigned_by="u1", assigned_to=["u1", "u2"], completion_percentage=100, review_accepted=True
    )
    tasks = [mine, given, wip, delegated, shared_done]

    assert [n.id for n in my_work_view(tasks, "u1", Bucket.OVERDUE, now)] == ["a", "b"]
    assert [n.id for n in my_work_view(tasks, "u1", Bucket.WIP, now)] == ["c"]
    assert [n.id for n in my_work_view(tasks, "u1", Bucket.DONE, now)] == ["e"]
    assert my_work_view(tasks, "u1", Bucket.REVIEWING, now) == []


def test_only_self_assigned_and_starred(now) -> None:
    own = make_task(id="a", assigned_by="u1", assigned_to=["u1"], starred_by_users=["u1"])
    given = make_task(id="b", assigned_by="u2", assigned_to=["u1"], starred_by_users=["u2"])

    assert [n.id for n in only_self_assigned([own, given], "u1")] == ["a"]
    assert [n.id for n in only_self_assigned(flatten([own, given]), "u1")] == ["a"]
    assert [n.id for n in starred_for([own, given], "u1")] == ["a"]
    assert [n.id for n in starred_for([own, given], "u2")] == ["b"]
