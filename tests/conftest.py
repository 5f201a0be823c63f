# tests/conftest.py

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

from buildtrack.cli.bootstrap import create_initial_state
from buildtrack.core.state import AppState

from .fakes import FakeSelectionCache, FakeSelectionRemote

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the bootstrap helpers.

    A SimpleNamespace rather than the real config keeps tests isolated from the
    developer's environment and .env.
    """
    return SimpleNamespace(
        app_name="buildtrack-test",
        log_level="DEBUG",
        data_dir=tmp_path,
        selection_cache_path=tmp_path / "selection.json",
        supabase_url=None,
        supabase_key=None,
        remote_timeout_seconds=1.0,
        selection_read_timeout_seconds=0.2,
        user_id=None,
        tasks_file=None,
    )


@pytest.fixture()
def state(settings: SimpleNamespace) -> AppState:
    """Offline AppState (no Supabase credentials in settings)."""
    return create_initial_state(settings=settings)


@pytest.fixture()
def remote() -> FakeSelectionRemote:
    return FakeSelectionRemote()


@pytest.fixture()
def cache() -> FakeSelectionCache:
    return FakeSelectionCache()
