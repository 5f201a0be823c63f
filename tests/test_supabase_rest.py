# tests/test_supabase_rest.py

from __future__ import annotations

import json

import httpx
import pytest

from buildtrack.remote.supabase_rest import RemoteStoreError, SupabaseRestClient


class Recorder:
    """MockTransport handler returning canned responses and keeping the requests."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


def _client(handler) -> SupabaseRestClient:
    return SupabaseRestClient(
        "https://demo.supabase.co/",
        "anon-key",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_reads_last_selected_project() -> None:
    rec = Recorder(httpx.Response(200, json=[{"last_selected_project_id": "p2"}]))
    async with _client(rec) as client:
        assert await client.get_last_selected_project("u1") == "p2"

    (req,) = rec.requests
    assert req.method == "GET"
    assert req.url.path == "/rest/v1/users"
    assert req.url.params["id"] == "eq.u1"
    assert req.url.params["select"] == "last_selected_project_id"
    assert req.headers["apikey"] == "anon-key"
    assert req.headers["Authorization"] == "Bearer anon-key"


@pytest.mark.asyncio
async def test_missing_user_or_null_value_reads_as_none() -> None:
    rec = Recorder(httpx.Response(200, json=[]), httpx.Response(200, json=[{"last_selected_project_id": None}]))
    async with _client(rec) as client:
        assert await client.get_last_selected_project("u1") is None
        assert await client.get_last_selected_project("u1") is None


@pytest.mark.asyncio
async def test_writes_selected_project() -> None:
    rec = Recorder(httpx.Response(204), httpx.Response(204))
    async with _client(rec) as client:
        await client.set_selected_project("p3", "u1")
        await client.set_selected_project(None, "u1")

    first, second = rec.requests
    assert first.method == "PATCH"
    assert first.url.path == "/rest/v1/users"
    assert first.url.params["id"] == "eq.u1"
    assert first.headers["Prefer"] == "return=minimal"
    assert json.loads(first.content) == {"last_selected_project_id": "p3"}
    assert json.loads(second.content) == {"last_selected_project_id": None}


@pytest.mark.asyncio
async def test_fetches_project_tasks_and_memberships() -> None:
    rec = Recorder(
        httpx.Response(200, json=[{"id": "t1", "project_id": "p1"}, "junk"]),
        httpx.Response(200, json=[{"project_id": "p1"}, {"project_id": "p2"}, {"project_id": "p1"}]),
    )
    async with _client(rec) as client:
        tasks = await client.fetch_project_tasks("p1")
        projects = await client.fetch_user_project_ids("u1")

    assert tasks == [{"id": "t1", "project_id": "p1"}]
    assert projects == ["p1", "p2"]

    tasks_req, members_req = rec.requests
    assert tasks_req.url.path == "/rest/v1/tasks"
    assert tasks_req.url.params["project_id"] == "eq.p1"
    assert tasks_req.url.params["order"] == "created_at.desc"
    assert members_req.url.path == "/rest/v1/user_project_assignments"
    assert members_req.url.params["user_id"] == "eq.u1"
    assert members_req.url.params["is_active"] == "eq.true"


@pytest.mark.asyncio
async def test_http_errors_become_remote_store_errors() -> None:
    rec = Recorder(httpx.Response(500, text="boom"), httpx.Response(200, json={"not": "a list"}))
    async with _client(rec) as client:
        with pytest.raises(RemoteStoreError, match="HTTP 500"):
            await client.get_last_selected_project("u1")
        with pytest.raises(RemoteStoreError, match="expected a list"):
            await client.fetch_user_project_ids("u1")


@pytest.mark.asyncio
async def test_transport_errors_become_remote_store_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(RemoteStoreError):
            await client.set_selected_project("p1", "u1")


def test_requires_url_and_key() -> None:
    with pytest.raises(ValueError):
        SupabaseRestClient("", "key")
    with pytest.raises(ValueError):
        SupabaseRestClient("https://demo.supabase.co", "")
