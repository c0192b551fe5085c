"""Async HTTP client for the kanbanflow API.

Failures are mapped onto a small taxonomy rooted at :class:`ApiError` so
callers can catch one exception type at the persistence boundary:

- :class:`ValidationFailed` for 400 / 422 responses
- :class:`Unauthorized` for 401 responses
- :class:`NotFound` for 404 responses
- :class:`TransportFailure` when the request never produced a response
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from kanbanflow.domain import to_priority_code

logger = logging.getLogger(__name__)

SESSION_EXPIRED_MESSAGE = "Your session has expired. Please sign in again."


class ApiError(Exception):
    """Base class for every failure raised by :class:`KanbanApiClient`."""

    def __init__(self, message: str, status_code: int | None = None, detail: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class ValidationFailed(ApiError):
    pass


class NotFound(ApiError):
    pass


class Unauthorized(ApiError):
    def __init__(self, message: str = SESSION_EXPIRED_MESSAGE, status_code: int | None = 401,
                 detail: Any = None):
        super().__init__(message, status_code, detail)


class TransportFailure(ApiError):
    pass


def _error_for(response: httpx.Response) -> ApiError:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    detail = payload.get("detail") if isinstance(payload, dict) else response.text
    message = detail if isinstance(detail, str) else f"HTTP {response.status_code}"
    status = response.status_code
    if status in (400, 422):
        return ValidationFailed(message, status, detail)
    if status == 401:
        return Unauthorized(status_code=status, detail=detail)
    if status == 404:
        return NotFound(message, status, detail)
    return ApiError(message, status, detail)


def _outbound(fields: dict[str, Any]) -> dict[str, Any]:
    """Convert a display-level task payload into its wire form."""
    body = dict(fields)
    if body.get("priority") is not None:
        body["priority"] = to_priority_code(body["priority"])
    return body


class KanbanApiClient:
    """Thin typed wrapper around ``httpx.AsyncClient``.

    Parameters
    ----------
    base_url:
        Server root, e.g. ``http://127.0.0.1:8000``.
    token:
        Optional session token sent as a bearer header.
    timeout:
        Per-request timeout in seconds.
    transport:
        Optional httpx transport (tests pass an ``ASGITransport``).
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8000",
        *,
        token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url, timeout=timeout, transport=transport,
        )
        self.token: str | None = None
        if token:
            self.set_token(token)

    async def __aenter__(self) -> KanbanApiClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def set_token(self, token: str | None) -> None:
        self.token = token
        if token:
            self._client.headers["Authorization"] = f"Bearer {token}"
        else:
            self._client.headers.pop("Authorization", None)

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise TransportFailure(str(e) or type(e).__name__) from e
        if response.status_code >= 400:
            error = _error_for(response)
            logger.debug("%s %s -> %d %s", method, path, response.status_code, error)
            raise error
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.warning("%s %s returned a non-JSON body", method, path)
            raise ApiError(
                f"Invalid JSON in response to {method} {path}",
                response.status_code,
                response.text,
            ) from e

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def signup(self, name: str, email: str, password: str) -> dict:
        return await self._request(
            "POST", "/api/auth/signup",
            json={"name": name, "email": email, "password": password},
        )

    async def signin(self, email: str, password: str) -> dict:
        """Sign in and use the returned token for subsequent requests."""
        data = await self._request(
            "POST", "/api/auth/signin", json={"email": email, "password": password},
        )
        self.set_token(data["token"])
        return data["user"]

    async def signout(self) -> None:
        await self._request("POST", "/api/auth/signout")
        self.set_token(None)

    async def session(self) -> dict:
        return (await self._request("GET", "/api/auth/session"))["user"]

    # ------------------------------------------------------------------
    # Boards and users
    # ------------------------------------------------------------------

    async def list_boards(self) -> list[dict]:
        return await self._request("GET", "/api/boards")

    async def create_board(self, name: str, description: str | None = None) -> dict:
        return await self._request(
            "POST", "/api/boards", json={"name": name, "description": description},
        )

    async def add_member(self, board_id: str, user_id: str) -> dict:
        return await self._request(
            "POST", f"/api/boards/{board_id}/members", json={"user_id": user_id},
        )

    async def list_users(self) -> list[dict]:
        return await self._request("GET", "/api/users")

    async def board_analytics(self, board_id: str) -> dict:
        return await self._request("GET", f"/api/boards/{board_id}/analytics")

    async def health(self) -> dict:
        return await self._request("GET", "/api/health")

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def list_tasks(self, board_id: str) -> list[dict]:
        return await self._request("GET", f"/api/boards/{board_id}/tasks")

    async def create_task(self, board_id: str, fields: dict[str, Any]) -> dict:
        return await self._request(
            "POST", f"/api/boards/{board_id}/tasks", json=_outbound(fields),
        )

    async def get_task(self, task_id: str) -> dict:
        return await self._request("GET", f"/api/tasks/{task_id}")

    async def update_task(self, task_id: str, changes: dict[str, Any]) -> dict:
        return await self._request("PATCH", f"/api/tasks/{task_id}", json=_outbound(changes))

    async def delete_task(self, task_id: str) -> None:
        await self._request("DELETE", f"/api/tasks/{task_id}")

    async def reorder_tasks(self, board_id: str, moves: list[dict[str, Any]]) -> list[dict]:
        return await self._request(
            "POST", f"/api/boards/{board_id}/tasks/reorder", json={"moves": moves},
        )

    # ------------------------------------------------------------------
    # Comments and attachments
    # ------------------------------------------------------------------

    async def list_comments(self, task_id: str) -> list[dict]:
        return await self._request("GET", f"/api/tasks/{task_id}/comments")

    async def add_comment(self, task_id: str, content: str) -> dict:
        return await self._request(
            "POST", f"/api/tasks/{task_id}/comments", json={"content": content},
        )

    async def add_attachment(self, task_id: str, name: str, url: str, type: str,
                             size: int = 0) -> dict:
        return await self._request(
            "POST", f"/api/tasks/{task_id}/attachments",
            json={"name": name, "url": url, "type": type, "size": size},
        )
