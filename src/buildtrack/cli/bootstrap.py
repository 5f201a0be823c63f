# src/buildtrack/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the selection cache and the remote store (Supabase or offline) into AppState,
- runs the session flow: pick a user, sync the project selection, load its tasks.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.state import AppState
from ..remote.offline import OfflineStore
from ..remote.supabase_rest import RemoteStoreError, SupabaseRestClient
from ..selection.cache import JsonSelectionCache
from ..selection.synchronizer import ProjectSelectionSynchronizer, SelectionResult
from ..tasks.task_models import tasks_from_records

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.selection_cache_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    If settings is None, falls back to get_settings(). Without Supabase
    credentials the app runs on an OfflineStore fed from BUILDTRACK_TASKS_FILE.
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    store: SupabaseRestClient | OfflineStore
    if settings.supabase_url and settings.supabase_key:
        store = SupabaseRestClient.from_settings(settings)
        logger.info("Using Supabase at %s", settings.supabase_url)
    else:
        store = OfflineStore()
        tasks_file = getattr(settings, "tasks_file", None)
        if tasks_file:
            try:
                store.load_file(tasks_file)
            except (OSError, ValueError):
                logger.exception("Failed to load tasks file %s", tasks_file)
        logger.info("No Supabase credentials configured; running offline.")

    return AppState(
        settings=settings,
        cache=JsonSelectionCache(settings.selection_cache_path),
        remote=store,
        source=store,
        user_id=getattr(settings, "user_id", None),
    )


async def reload_tasks(state: AppState) -> int:
    """Fetch and parse the tasks of the selected project. Returns how many top-level records arrived."""
    project_id = state.selected_project_id
    if not project_id:
        state.tasks = []
        return 0
    records = await state.source.fetch_project_tasks(project_id)
    state.tasks = tasks_from_records(records)
    logger.debug("Loaded %d tasks for project %s", len(state.tasks), project_id)
    return len(state.tasks)


async def refresh_projects(state: AppState) -> SelectionResult | None:
    """Re-read the user's projects, run the selection sync and reload tasks."""
    if not state.user_id:
        return None
    if state.synchronizer is None:
        state.synchronizer = ProjectSelectionSynchronizer(
            state.user_id,
            state.remote,
            state.cache,
            read_timeout_seconds=float(getattr(state.settings, "selection_read_timeout_seconds", 5.0)),
        )

    try:
        state.project_ids = await state.source.fetch_user_project_ids(state.user_id)
    except RemoteStoreError:
        # Without a project list nothing can be validated; keep the previous one.
        logger.exception("Failed to fetch projects for user %s", state.user_id)
        return None

    result = await state.synchronizer.on_projects_changed(state.project_ids)
    logger.info("Project selection for %s: %s (%s)", state.user_id, result.outcome, result.project_id)
    await reload_tasks(state)
    return result


async def start_session(state: AppState, user_id: str) -> SelectionResult | None:
    """Switch to another user: a fresh synchronizer, then the first selection pass."""
    if state.synchronizer is not None:
        await state.synchronizer.drain()
    state.user_id = str(user_id)
    state.synchronizer = None
    state.project_ids = []
    state.tasks = []
    return await refresh_projects(state)


async def shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    if state.synchronizer is not None:
        try:
            await state.synchronizer.drain()
        except Exception:
            logger.exception("Failed to flush pending selection writes.")

    aclose = getattr(state.remote, "aclose", None)
    if aclose is not None:
        try:
            await aclose()
        except Exception:
            logger.debug("Remote client close failed.", exc_info=True)
