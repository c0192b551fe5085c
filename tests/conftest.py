# tests/conftest.py
import pytest
from httpx import ASGITransport, AsyncClient

from kanbanflow.auth import SessionManager
from kanbanflow.backend.database import Database
from kanbanflow.backend.event_bus import EventBus
from kanbanflow.backend.task_board import TaskBoard
from kanbanflow.config_loader import default_config

# Low PBKDF2 work factor keeps the auth-heavy tests fast.
TEST_ITERATIONS = 1_000


@pytest.fixture
async def db():
    database = Database(":memory:")
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
async def event_bus():
    bus = EventBus()
    yield bus
    await bus.drain()


@pytest.fixture
async def board(db, event_bus):
    task_board = TaskBoard(db, event_bus=event_bus)
    await task_board.register_prefixes()
    return task_board


@pytest.fixture
async def sessions(db, board):
    return SessionManager(db, board, password_iterations=TEST_ITERATIONS)


@pytest.fixture
async def owner(sessions):
    return await sessions.signup("Olivia Owner", "owner@example.com", "correct-horse")


@pytest.fixture
async def app(board, event_bus, sessions):
    from kanbanflow.dashboard.app import create_app

    return create_app(
        task_board=board,
        event_bus=event_bus,
        session_manager=sessions,
        config=default_config(),
    )


@pytest.fixture
async def app_client(app, board, sessions, owner):
    """An HTTP client signed in as ``owner``."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post(
            "/api/auth/signin",
            json={"email": "owner@example.com", "password": "correct-horse"},
        )
        assert resp.status_code == 200
        client.headers["Authorization"] = f"Bearer {resp.json()['token']}"
        yield {"client": client, "board": board, "sessions": sessions, "owner": owner}


def make_task(task_id, status="todo", order=0, **fields):
    """A display-level task record for client-side tests."""
    task = {
        "id": task_id,
        "board_id": "BRD-001",
        "column_id": {"todo": "COL-001", "in_progress": "COL-002", "done": "COL-003"}[status],
        "title": f"Task {task_id}",
        "description": None,
        "status": status,
        "priority": "medium",
        "assignee_id": None,
        "assignee": None,
        "due_date": None,
        "tags": [],
        "order": order,
        "created_at": "2024-01-01T00:00:00+00:00",
        "updated_at": "2024-01-01T00:00:00+00:00",
        "comments": [],
        "attachments": [],
    }
    task.update(fields)
    return task


def make_board(board_id="BRD-001"):
    return {
        "id": board_id,
        "name": "Roadmap",
        "description": None,
        "owner_id": "USR-001",
        "columns": [
            {"id": "COL-001", "board_id": board_id, "key": "todo", "title": "To Do",
             "color": "#ef4444", "order": 0},
            {"id": "COL-002", "board_id": board_id, "key": "in_progress", "title": "In Progress",
             "color": "#f59e0b", "order": 1},
            {"id": "COL-003", "board_id": board_id, "key": "done", "title": "Done",
             "color": "#10b981", "order": 2},
        ],
        "members": [],
    }
