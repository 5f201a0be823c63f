# src/buildtrack/selection/synchronizer.py

from __future__ import annotations

"""
Project-selection synchronizer.

Keeps the user's "active project" consistent across three tiers:
- in memory (this object),
- a per-device cache (SelectionCache port),
- the authoritative field on the user record (SelectionRemote port).

Phases:
    UNINITIALIZED -> RESOLVING -> INITIALIZED <-> REVALIDATING

The first pass runs once per session. While it waits on the server read the
phase is RESOLVING; revalidation is deferred and the latest project list seen
in that window is applied once the first pass settles.

Remote failures never leave this class. Reads fall back to the local value,
writes are scheduled on the running loop and their failures only logged.
"""

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from ..core.ports import SelectionCache, SelectionRemote

logger = logging.getLogger(__name__)


class SyncPhase(StrEnum):
    UNINITIALIZED = "uninitialized"
    RESOLVING = "resolving"
    INITIALIZED = "initialized"
    REVALIDATING = "revalidating"


class SelectionOutcome(StrEnum):
    NO_PROJECTS = "no_projects"
    AUTO_SELECTED = "auto_selected"
    KEPT = "kept"
    ADOPTED_SERVER = "adopted_server"
    REPUSHED_LOCAL = "repushed_local"
    SELECTION_REQUIRED = "selection_required"
    UNCHANGED = "unchanged"
    CLEARED = "cleared"
    SKIPPED = "skipped"


@dataclass(slots=True, frozen=True)
class SelectionResult:
    outcome: SelectionOutcome
    project_id: str | None

    @property
    def needs_picker(self) -> bool:
        return self.outcome == SelectionOutcome.SELECTION_REQUIRED


def _project_list(project_ids: Iterable[str]) -> list[str]:
    out: list[str] = []
    for p in project_ids:
        s = str(p).strip() if p is not None else ""
        if s and s not in out:
            out.append(s)
    return out


class ProjectSelectionSynchronizer:
    def __init__(
            self,
            user_id: str,
            remote: SelectionRemote,
            cache: SelectionCache,
            *,
            read_timeout_seconds: float = 5.0,
    ) -> None:
        self.user_id = str(user_id)
        self._remote = remote
        self._cache = cache
        self._read_timeout = read_timeout_seconds

        self.phase = SyncPhase.UNINITIALIZED
        self._selected: str | None = cache.get(self.user_id)
        # Bumped by every explicit pick; lets the first pass detect a pick made mid-read.
        self._picks = 0
        # Latest project list that arrived while RESOLVING.
        self._deferred_projects: list[str] | None = None
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def selected_project_id(self) -> str | None:
        return self._selected

    # ---- tiers ----

    def _set_local(self, project_id: str | None) -> None:
        self._selected = project_id
        self._cache.set(self.user_id, project_id)

    def _push(self, project_id: str | None) -> None:
        """Fire-and-forget server write."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                "No running event loop; server write of project=%s for user=%s skipped.",
                project_id,
                self.user_id,
            )
            return

        task = loop.create_task(self._write(project_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, project_id: str | None) -> None:
        try:
            await self._remote.set_selected_project(project_id, self.user_id)
            logger.debug("Server selection for user=%s set to %s", self.user_id, project_id)
        except Exception:
            logger.exception("Failed to persist selected project=%s for user=%s", project_id, self.user_id)

    async def _read_server(self) -> str | None:
        try:
            raw = await asyncio.wait_for(
                self._remote.get_last_selected_project(self.user_id),
                timeout=self._read_timeout,
            )
        except TimeoutError:
            logger.warning(
                "Reading last selected project for user=%s timed out after %.1fs; using local value.",
                self.user_id,
                self._read_timeout,
            )
            return None
        except Exception:
            logger.exception("Failed to read last selected project for user=%s", self.user_id)
            return None
        if raw is None:
            return None
        return str(raw).strip() or None

    # ---- transitions ----

    async def initialize(self, project_ids: Iterable[str]) -> SelectionResult:
        if self.phase != SyncPhase.UNINITIALIZED:
            return SelectionResult(SelectionOutcome.SKIPPED, self._selected)

        projects = _project_list(project_ids)

        if not projects:
            self._set_local(None)
            self.phase = SyncPhase.INITIALIZED
            logger.info("User %s has no projects; selection cleared.", self.user_id)
            return SelectionResult(SelectionOutcome.NO_PROJECTS, None)

        if len(projects) == 1:
            self._set_local(projects[0])
            self._push(projects[0])
            self.phase = SyncPhase.INITIALIZED
            logger.info("User %s has a single project; auto-selected %s.", self.user_id, projects[0])
            return SelectionResult(SelectionOutcome.AUTO_SELECTED, projects[0])

        self.phase = SyncPhase.RESOLVING
        self._deferred_projects = None
        picks_before = self._picks
        try:
            server = await self._read_server()
        finally:
            self.phase = SyncPhase.INITIALIZED

        result = self._resolve(projects, server, picked=self._picks != picks_before)

        deferred, self._deferred_projects = self._deferred_projects, None
        if deferred is None:
            return result
        logger.info("Applying project list change received during the server read.")
        revalidated = self._revalidate(deferred)
        if revalidated.outcome == SelectionOutcome.UNCHANGED:
            return result
        return revalidated

    def _resolve(self, projects: list[str], server: str | None, *, picked: bool) -> SelectionResult:
        if picked:
            # The user chose a project while the read was in flight; their choice stands.
            logger.info("Explicit selection %s made during server read; keeping it.", self._selected)
            return SelectionResult(SelectionOutcome.KEPT, self._selected)

        local = self._selected
        valid = set(projects)

        if local is not None and local == server and local in valid:
            return SelectionResult(SelectionOutcome.KEPT, local)

        if server is not None and server in valid:
            self._set_local(server)
            logger.info("Adopted server selection %s for user %s.", server, self.user_id)
            return SelectionResult(SelectionOutcome.ADOPTED_SERVER, server)

        if local is not None and local in valid:
            self._push(local)
            logger.info("Server selection %s is stale; re-pushing local %s.", server, local)
            return SelectionResult(SelectionOutcome.REPUSHED_LOCAL, local)

        if local is not None:
            self._set_local(None)
        logger.info("No valid selection for user %s among %d projects.", self.user_id, len(projects))
        return SelectionResult(SelectionOutcome.SELECTION_REQUIRED, None)

    async def revalidate(self, project_ids: Iterable[str]) -> SelectionResult:
        """Re-check the selection after the project list changed. Never swaps a valid selection."""
        if self.phase == SyncPhase.RESOLVING:
            self._deferred_projects = _project_list(project_ids)
            logger.debug("Revalidation deferred until the first pass settles.")
            return SelectionResult(SelectionOutcome.SKIPPED, self._selected)
        if self.phase != SyncPhase.INITIALIZED:
            logger.debug("Revalidation skipped in phase %s.", self.phase)
            return SelectionResult(SelectionOutcome.SKIPPED, self._selected)

        self.phase = SyncPhase.REVALIDATING
        try:
            return self._revalidate(_project_list(project_ids))
        finally:
            self.phase = SyncPhase.INITIALIZED

    def _revalidate(self, projects: list[str]) -> SelectionResult:
        current = self._selected

        if not projects:
            if current is None:
                return SelectionResult(SelectionOutcome.NO_PROJECTS, None)
            self._set_local(None)
            self._push(None)
            logger.info("User %s lost all projects; selection cleared.", self.user_id)
            return SelectionResult(SelectionOutcome.CLEARED, None)

        if current is not None and current in projects:
            return SelectionResult(SelectionOutcome.UNCHANGED, current)

        if len(projects) == 1:
            self._set_local(projects[0])
            self._push(projects[0])
            return SelectionResult(SelectionOutcome.AUTO_SELECTED, projects[0])

        if current is not None:
            logger.info("Selected project %s is no longer available to user %s.", current, self.user_id)
            self._set_local(None)
            self._push(None)
        return SelectionResult(SelectionOutcome.SELECTION_REQUIRED, None)

    async def on_projects_changed(self, project_ids: Iterable[str]) -> SelectionResult:
        if self.phase == SyncPhase.UNINITIALIZED:
            return await self.initialize(project_ids)
        return await self.revalidate(project_ids)

    def select(self, project_id: str) -> SelectionResult:
        """Explicit choice from the picker: memory and cache now, server in the background."""
        project_id = str(project_id).strip()
        if not project_id:
            raise ValueError("project_id is required")
        self._picks += 1
        self._set_local(project_id)
        self._push(project_id)
        return SelectionResult(SelectionOutcome.KEPT, project_id)

    async def drain(self) -> None:
        """Wait for scheduled server writes (shutdown, tests)."""
        while self._pending:
            batch = list(self._pending)
            await asyncio.gather(*batch, return_exceptions=True)
            self._pending.difference_update(batch)
