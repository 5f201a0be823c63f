# src/buildtrack/remote/offline.py

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class OfflineStore:
    """
    In-process stand-in for the remote store, used when no Supabase project is configured.

    Behavior:
    - tasks come from records loaded with load_file() / load_records()
    - a user's projects are the projects of tasks they created or were assigned
    - the "last selected project" lives in memory for the session
    """

    def __init__(self, records: Iterable[Mapping[str, Any]] = ()) -> None:
        self._records: list[dict[str, Any]] = []
        self._last_selected: dict[str, str | None] = {}
        self.load_records(records)

    def load_records(self, records: Iterable[Mapping[str, Any]]) -> int:
        self._records = [dict(r) for r in records if isinstance(r, Mapping)]
        return len(self._records)

    def load_file(self, path: str | Path) -> int:
        """Load a JSON array of task records (or {"tasks": [...]}); returns the count."""
        data = json.loads(Path(path).read_text("utf-8"))
        if isinstance(data, Mapping):
            data = data.get("tasks", [])
        if not isinstance(data, list):
            raise ValueError(f"{path}: expected a JSON array of task records")
        n = self.load_records(data)
        logger.info("Loaded %d task records from %s", n, path)
        return n

    @staticmethod
    def _project_of(record: Mapping[str, Any]) -> str:
        return str(record.get("projectId") or record.get("project_id") or "")

    async def get_last_selected_project(self, user_id: str) -> str | None:
        return self._last_selected.get(str(user_id))

    async def set_selected_project(self, project_id: str | None, user_id: str) -> None:
        self._last_selected[str(user_id)] = project_id

    async def fetch_project_tasks(self, project_id: str) -> list[dict[str, Any]]:
        return [r for r in self._records if self._project_of(r) == str(project_id)]

    async def fetch_user_project_ids(self, user_id: str) -> list[str]:
        me = str(user_id)
        out: list[str] = []
        for r in self._records:
            assigned_by = str(r.get("assignedBy") or r.get("assigned_by") or "")
            assigned_to = r.get("assignedTo") or r.get("assigned_to") or []
            if not isinstance(assigned_to, list):
                assigned_to = []
            if assigned_by != me and me not in {str(u) for u in assigned_to}:
                continue
            pid = self._project_of(r)
            if pid and pid not in out:
                out.append(pid)
        return out
