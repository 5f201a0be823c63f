# src/buildtrack/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..selection.synchronizer import ProjectSelectionSynchronizer
from ..tasks.task_models import Task
from .ports import SelectionCache, SelectionRemote, TaskSource


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any

    cache: SelectionCache
    remote: SelectionRemote
    source: TaskSource

    user_id: str | None = None
    synchronizer: ProjectSelectionSynchronizer | None = None

    project_ids: list[str] = field(default_factory=list)
    # Tasks of the selected project, parsed.
    tasks: list[Task] = field(default_factory=list)

    @property
    def selected_project_id(self) -> str | None:
        if self.synchronizer is None:
            return None
        return self.synchronizer.selected_project_id
