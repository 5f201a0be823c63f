# src/buildtrack/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The triage engine and the selection synchronizer depend on Protocols instead of
concrete stores. This keeps the backing service (Supabase, a local file, a fake)
swappable and makes testing easier.
"""

from typing import Any, Protocol


class SelectionRemote(Protocol):
    """
    Authoritative "last selected project" field on the user record.

    Reads may fail or hang; the synchronizer bounds them and treats a failure as
    "no value". Writes are best-effort.
    """

    async def get_last_selected_project(self, user_id: str) -> str | None: ...

    async def set_selected_project(self, project_id: str | None, user_id: str) -> None: ...


class SelectionCache(Protocol):
    """Per-device copy of the selection, keyed by user."""

    def get(self, user_id: str) -> str | None: ...

    def set(self, user_id: str, project_id: str | None) -> None: ...


class TaskSource(Protocol):
    # Raw records; parsing into Task happens in tasks.task_models.
    async def fetch_project_tasks(self, project_id: str) -> list[dict[str, Any]]: ...

    async def fetch_user_project_ids(self, user_id: str) -> list[str]: ...
