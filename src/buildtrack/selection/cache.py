# src/buildtrack/selection/cache.py

from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


class JsonSelectionCache:
    """
    Local copy of each user's selected project, stored as one JSON object
    ({"<user_id>": "<project_id>"}).

    Best-effort: an unreadable file loads as empty and write failures are only
    logged, so the in-memory value stays usable for the session.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._data: dict[str, str] = self._load()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text("utf-8"))
        except Exception:
            logger.exception("Failed to load selection cache from %s", self.path)
            return {}
        if not isinstance(data, dict):
            logger.warning("Selection cache %s is not a JSON object; ignoring it.", self.path)
            return {}
        return {str(k): str(v) for k, v in data.items() if isinstance(v, str) and v}

    def _save(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(".tmp")
            tmp.write_text(json.dumps(self._data, ensure_ascii=False, indent=2), "utf-8")
            os.replace(tmp, self.path)
            with contextlib.suppress(OSError):
                os.chmod(self.path, 0o600)
            logger.debug("Saved selection cache: %d users to %s", len(self._data), self.path)
        except Exception:
            logger.exception("Failed to save selection cache to %s", self.path)

    def get(self, user_id: str) -> str | None:
        return self._data.get(str(user_id))

    def set(self, user_id: str, project_id: str | None) -> None:
        key = str(user_id)
        if project_id:
            if self._data.get(key) == project_id:
                return
            self._data[key] = str(project_id)
        else:
            if key not in self._data:
                return
            del self._data[key]
        self._save()
