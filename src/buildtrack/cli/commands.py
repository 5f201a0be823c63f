# src/buildtrack/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import cast

from ..core.state import AppState
from ..remote.offline import OfflineStore
from ..remote.supabase_rest import RemoteStoreError
from ..tasks.grouping import SortDirection, group_by_parent, sort_for_display
from ..tasks.lifecycle import is_overdue, utc_now
from ..tasks.task_models import TaskNode
from ..tasks.triage import (
    MAILBOX_BUCKETS,
    MY_WORK_BUCKETS,
    Bucket,
    Mailbox,
    build_board,
    my_work_view,
    only_self_assigned,
    starred_for,
)
from .bootstrap import refresh_projects, reload_tasks, start_session

CommandEmitter = Callable[[str], None]
CommandResult = str | Awaitable[str]
CommandHandler2 = Callable[[AppState, list[str]], CommandResult]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], CommandResult]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)

MY_WORK = "my_work"

_MAILBOX_ALIASES = {
    "my": Mailbox.MY_TASKS,
    "mine": Mailbox.MY_TASKS,
    "my_tasks": Mailbox.MY_TASKS,
    "inbox": Mailbox.INBOX,
    "in": Mailbox.INBOX,
    "outbox": Mailbox.OUTBOX,
    "out": Mailbox.OUTBOX,
}


class CommandRegistry:
    """Slash-command registry used by the console (/help, /board, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command. Handlers may be sync or async.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            result = cast(CommandHandler3, handler)(state, args, emit)
        else:
            result = cast(CommandHandler2, handler)(state, args)

        if inspect.isawaitable(result):
            result = await result
        return result

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- formatting ----


def _format_node(node: TaskNode, indent: int = 0) -> str:
    t = node.task
    title = t.title or t.id or "(untitled)"
    due = ""
    if t.due_date is not None:
        due = f" due {t.due_date.date().isoformat()}"
        if is_overdue(t):
            due += " (late)"
    kind = "sub " if node.parent_id else ""
    return f"{'  ' * indent}- {kind}[{t.priority}] {title} {t.completion_percentage}%{due} <{t.id}>"


def _parse_view_args(args: list[str]) -> tuple[Mailbox | str, Bucket, list[str]] | str:
    if len(args) < 2:
        return "Usage: /view <my|inbox|outbox|my_work> <bucket> [self] [priority|-priority] [due|-due]"

    raw_mb = args[0].lower()
    mailbox: Mailbox | str
    if raw_mb == MY_WORK:
        mailbox = MY_WORK
    elif raw_mb in _MAILBOX_ALIASES:
        mailbox = _MAILBOX_ALIASES[raw_mb]
    else:
        return f"Unknown mailbox: {args[0]}. Use my, inbox, outbox or my_work."

    try:
        bucket = Bucket(args[1].lower())
    except ValueError:
        return f"Unknown bucket: {args[1]}. Use one of: {', '.join(b.value for b in Bucket)}."

    offered = MY_WORK_BUCKETS if mailbox == MY_WORK else MAILBOX_BUCKETS[cast(Mailbox, mailbox)]
    if bucket not in offered:
        return f"{mailbox} has no '{bucket}' bucket. Offered: {', '.join(b.value for b in offered)}."
    return mailbox, bucket, [a.lower() for a in args[2:]]


def _select_nodes(state: AppState, mailbox: Mailbox | str, bucket: Bucket, flags: list[str]) -> list[TaskNode]:
    assert state.user_id is not None
    now = utc_now()
    if mailbox == MY_WORK:
        nodes = my_work_view(state.tasks, state.user_id, bucket, now)
    else:
        nodes = build_board(state.tasks, state.user_id, now).view(cast(Mailbox, mailbox), bucket)

    # The self-assigned toggle never narrows the reviewing bucket.
    if "self" in flags and bucket != Bucket.REVIEWING:
        nodes = only_self_assigned(nodes, state.user_id)

    priority = due = None
    if "priority" in flags:
        priority = SortDirection.DESC
    elif "-priority" in flags:
        priority = SortDirection.ASC
    if "due" in flags:
        due = SortDirection.DESC
    elif "-due" in flags:
        due = SortDirection.ASC
    return sort_for_display(nodes, priority=priority, due_date=due)


def _need_user(state: AppState) -> str | None:
    if not state.user_id:
        return "No user selected. Use /user <id> first."
    return None


# ---- commands ----


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    mode = "offline" if isinstance(state.remote, OfflineStore) else "supabase"
    sync = state.synchronizer
    phase = sync.phase if sync is not None else "-"
    return (
        "Status:\n"
        f"  Store: {mode}\n"
        f"  User: {state.user_id or '-'}\n"
        f"  Projects: {len(state.project_ids)}\n"
        f"  Selected project: {state.selected_project_id or '-'} (sync: {phase})\n"
        f"  Tasks loaded: {len(state.tasks)}"
    )


async def cmd_load(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /load <file>  -> replace the offline task records with a JSON export
    """
    if not args:
        return "Usage: /load <file.json>"
    if not isinstance(state.remote, OfflineStore):
        return "/load is only available in offline mode."
    try:
        n = state.remote.load_file(args[0])
    except (OSError, ValueError) as e:
        return f"Could not load {args[0]}: {e}"
    if state.user_id:
        await refresh_projects(state)
    return f"Loaded {n} task records."


async def cmd_user(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return f"Current user: {state.user_id or '-'}. Usage: /user <id>"
    if emit:
        emit(f"Switching to user {args[0]}...")
    result = await start_session(state, args[0])
    if result is None:
        return f"User set to {args[0]}, but the project list could not be loaded."
    if result.needs_picker:
        return f"User {args[0]}: {len(state.project_ids)} projects, pick one with /select <project>."
    return f"User {args[0]}: project {result.project_id or '-'} ({result.outcome})."


def cmd_board(state: AppState, args: list[str]) -> str:
    if msg := _need_user(state):
        return msg
    assert state.user_id is not None
    board = build_board(state.tasks, state.user_id)
    lines = [f"Board for {state.user_id} (project {state.selected_project_id or '-'}):"]
    for mailbox, counts in board.counts().items():
        parts = ", ".join(f"{b}={n}" for b, n in counts.items())
        lines.append(f"  {mailbox} ({board.total(mailbox)}): {parts}")
    return "\n".join(lines)


def cmd_view(state: AppState, args: list[str]) -> str:
    """
    /view inbox wip              -> flat list, newest first
    /view my_work overdue self   -> only tasks I gave myself
    /view outbox wip priority due
    """
    if msg := _need_user(state):
        return msg
    parsed = _parse_view_args(args)
    if isinstance(parsed, str):
        return parsed
    mailbox, bucket, flags = parsed
    nodes = _select_nodes(state, mailbox, bucket, flags)
    if not nodes:
        return f"No tasks in {mailbox}/{bucket}."
    return "\n".join([f"{mailbox}/{bucket} ({len(nodes)}):"] + [_format_node(n) for n in nodes])


def cmd_tree(state: AppState, args: list[str]) -> str:
    if msg := _need_user(state):
        return msg
    parsed = _parse_view_args(args)
    if isinstance(parsed, str):
        return parsed.replace("/view", "/tree")
    mailbox, bucket, flags = parsed
    grouping = group_by_parent(
        _select_nodes(state, mailbox, bucket, flags),
        require_same_assignees="same" in flags,
    )
    if not len(grouping):
        return f"No tasks in {mailbox}/{bucket}."

    lines = [f"{mailbox}/{bucket}:"]
    for group in grouping.groups:
        lines.append(_format_node(group.parent))
        lines.extend(_format_node(c, indent=1) for c in group.children)
    if grouping.standalone:
        lines.append("standalone:")
        lines.extend(_format_node(n, indent=1) for n in grouping.standalone)
    return "\n".join(lines)


async def cmd_projects(state: AppState, args: list[str]) -> str:
    if msg := _need_user(state):
        return msg
    result = await refresh_projects(state)
    if not state.project_ids:
        return "No projects."
    lines = ["Projects:"]
    for pid in state.project_ids:
        mark = "*" if pid == state.selected_project_id else " "
        lines.append(f" {mark} {pid}")
    if result is not None and result.needs_picker:
        lines.append("No project selected. Use /select <project>.")
    return "\n".join(lines)


async def cmd_select(state: AppState, args: list[str]) -> str:
    if msg := _need_user(state):
        return msg
    if not args:
        return "Usage: /select <project>"
    if state.synchronizer is None:
        return "Project list not loaded yet. Use /projects."
    project_id = args[0]
    if project_id not in state.project_ids:
        return f"Project {project_id} is not one of yours. Use /projects."
    state.synchronizer.select(project_id)
    try:
        n = await reload_tasks(state)
    except RemoteStoreError as e:
        logger.warning("Task reload failed after selecting %s: %s", project_id, e)
        return f"Selected {project_id}, but its tasks could not be loaded."
    return f"Selected {project_id} ({n} tasks)."


def cmd_today(state: AppState, args: list[str]) -> str:
    if msg := _need_user(state):
        return msg
    assert state.user_id is not None
    nodes = starred_for(state.tasks, state.user_id)
    if not nodes:
        return "Nothing starred for today."
    return "\n".join(["Today:"] + [_format_node(n) for n in nodes])


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show store, user and selection state.")
registry.register("load", cmd_load, help_text="Load task records from a JSON file (offline): /load <file>.")
registry.register("user", cmd_user, help_text="Switch user and sync the selected project: /user <id>.")
registry.register("board", cmd_board, help_text="Bucket counts for every mailbox.")
registry.register(
    "view",
    cmd_view,
    help_text="List a bucket: /view <my|inbox|outbox|my_work> <bucket> [self] [priority|-priority] [due|-due].",
)
registry.register("tree", cmd_tree, help_text="Like /view, grouped under parent tasks; add 'same' to split by assignees.")
registry.register("projects", cmd_projects, help_text="Refresh and list your projects.")
registry.register("select", cmd_select, help_text="Select the active project: /select <project>.")
registry.register("today", cmd_today, help_text="Tasks you starred.")
