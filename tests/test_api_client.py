"""Tests for KanbanApiClient against the real app and against failing transports."""

import httpx
import pytest
from httpx import ASGITransport

from kanbanflow.client.api_client import (
    SESSION_EXPIRED_MESSAGE,
    ApiError,
    KanbanApiClient,
    NotFound,
    TransportFailure,
    Unauthorized,
    ValidationFailed,
)


@pytest.fixture
async def api(app, owner):
    client = KanbanApiClient("http://test", transport=ASGITransport(app=app))
    await client.signin("owner@example.com", "correct-horse")
    yield client
    await client.aclose()


def _mock_client(handler):
    return KanbanApiClient("http://test", transport=httpx.MockTransport(handler))


async def test_signin_sets_bearer_token(api, owner):
    assert api.token
    assert (await api.session())["id"] == owner["id"]
    assert (await api.health())["status"] == "ok"


async def test_board_and_task_lifecycle(api):
    board = await api.create_board("Launch")
    assert [b["id"] for b in await api.list_boards()] == [board["id"]]

    task = await api.create_task(board["id"], {"title": "Write copy", "priority": "high"})
    assert task["priority"] == "HIGH"

    updated = await api.update_task(task["id"], {"status": "done", "priority": "low"})
    assert (updated["status"], updated["priority"]) == ("done", "LOW")

    comment = await api.add_comment(task["id"], "Ready for review")
    assert [c["id"] for c in await api.list_comments(task["id"])] == [comment["id"]]

    await api.add_attachment(task["id"], "copy.txt", "https://files/copy.txt", "text/plain", 12)
    assert (await api.get_task(task["id"]))["attachments"][0]["size"] == 12

    analytics = await api.board_analytics(board["id"])
    assert analytics["completed"] == 1

    await api.delete_task(task["id"])
    assert await api.list_tasks(board["id"]) == []


async def test_reorder_batch(api):
    board = await api.create_board("Launch")
    a = await api.create_task(board["id"], {"title": "A"})
    b = await api.create_task(board["id"], {"title": "B"})
    result = await api.reorder_tasks(board["id"], [
        {"id": b["id"], "status": "todo", "order": 0},
        {"id": a["id"], "status": "todo", "order": 1},
    ])
    assert [t["id"] for t in result] == [b["id"], a["id"]]


async def test_error_taxonomy(api):
    with pytest.raises(NotFound):
        await api.get_task("TSK-999")

    board = await api.create_board("Launch")
    task = await api.create_task(board["id"], {"title": "A"})
    with pytest.raises(ValidationFailed) as exc_info:
        await api.update_task(task["id"], {"status": "blocked"})
    assert exc_info.value.status_code == 400

    with pytest.raises(ValidationFailed) as exc_info:
        await api.create_task(board["id"], {"title": ""})
    assert exc_info.value.status_code == 422


async def test_signed_out_requests_are_unauthorized(api):
    await api.signout()
    assert api.token is None
    with pytest.raises(Unauthorized) as exc_info:
        await api.list_boards()
    assert str(exc_info.value) == SESSION_EXPIRED_MESSAGE


async def test_transport_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with _mock_client(handler) as client:
        with pytest.raises(TransportFailure):
            await client.list_boards()


async def test_server_error_keeps_detail():
    async with _mock_client(lambda request: httpx.Response(500, json={"detail": "boom"})) as client:
        with pytest.raises(ApiError) as exc_info:
            await client.list_boards()
    error = exc_info.value
    assert type(error) is ApiError
    assert (str(error), error.status_code) == ("boom", 500)


async def test_non_json_error_body():
    async with _mock_client(lambda request: httpx.Response(502, text="Bad gateway")) as client:
        with pytest.raises(ApiError, match="Bad gateway"):
            await client.health()


async def test_non_json_success_body_is_an_api_error():
    async with _mock_client(lambda request: httpx.Response(200, text="<html>proxy</html>")) as client:
        with pytest.raises(ApiError) as exc_info:
            await client.list_boards()
    assert exc_info.value.status_code == 200
    assert exc_info.value.detail == "<html>proxy</html>"


async def test_empty_success_body():
    async with _mock_client(lambda request: httpx.Response(204)) as client:
        assert await client.delete_task("TSK-001") is None
