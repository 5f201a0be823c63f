# src/buildtrack/remote/supabase_rest.py

from __future__ import annotations

"""
Supabase PostgREST client.

Implements the SelectionRemote and TaskSource ports over plain HTTP with httpx.
Every transport or status failure is raised as RemoteStoreError; callers decide
whether to absorb it (the selection synchronizer does).
"""

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class RemoteStoreError(RuntimeError):
    """The remote store could not be reached or rejected the request."""


class SupabaseRestClient:
    def __init__(
            self,
            base_url: str,
            api_key: str,
            *,
            timeout_seconds: float = 10.0,
            transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        base_url = (base_url or "").strip().rstrip("/")
        if not base_url:
            raise ValueError("Supabase URL is not configured.")
        if not api_key:
            raise ValueError("Supabase API key is not configured.")

        self._client = httpx.AsyncClient(
            base_url=f"{base_url}/rest/v1",
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout_seconds,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings) -> SupabaseRestClient:
        return cls(
            settings.supabase_url or "",
            settings.supabase_key or "",
            timeout_seconds=float(getattr(settings, "remote_timeout_seconds", 10.0)),
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> SupabaseRestClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _request(
            self,
            method: str,
            table: str,
            *,
            params: dict[str, str],
            json: Any = None,
            prefer: str | None = None,
    ) -> Any:
        headers = {"Prefer": prefer} if prefer else None
        try:
            resp = await self._client.request(method, f"/{table}", params=params, json=json, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RemoteStoreError(
                f"{method} {table} failed with HTTP {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise RemoteStoreError(f"{method} {table} failed: {e}") from e

        logger.debug("%s %s -> %s", method, table, resp.status_code)
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise RemoteStoreError(f"{method} {table} returned invalid JSON") from e

    async def _select(self, table: str, params: dict[str, str]) -> list[dict[str, Any]]:
        rows = await self._request("GET", table, params=params)
        if not isinstance(rows, list):
            raise RemoteStoreError(f"GET {table} returned {type(rows).__name__}, expected a list")
        return [r for r in rows if isinstance(r, dict)]

    # ---- SelectionRemote ----

    async def get_last_selected_project(self, user_id: str) -> str | None:
        rows = await self._select(
            "users",
            {"id": f"eq.{user_id}", "select": "last_selected_project_id"},
        )
        if not rows:
            return None
        value = rows[0].get("last_selected_project_id")
        return str(value) if value else None

    async def set_selected_project(self, project_id: str | None, user_id: str) -> None:
        await self._request(
            "PATCH",
            "users",
            params={"id": f"eq.{user_id}"},
            json={"last_selected_project_id": project_id},
            prefer="return=minimal",
        )

    # ---- TaskSource ----

    async def fetch_project_tasks(self, project_id: str) -> list[dict[str, Any]]:
        return await self._select(
            "tasks",
            {
                "project_id": f"eq.{project_id}",
                "select": "*,sub_tasks(*)",
                "order": "created_at.desc",
            },
        )

    async def fetch_user_project_ids(self, user_id: str) -> list[str]:
        rows = await self._select(
            "user_project_assignments",
            {"user_id": f"eq.{user_id}", "is_active": "eq.true", "select": "project_id"},
        )
        out: list[str] = []
        for r in rows:
            pid = r.get("project_id")
            if pid and str(pid) not in out:
                out.append(str(pid))
        return out
