"""Command-line entry point: run the server, initialise a project, create users."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from kanbanflow.auth import SessionManager
from kanbanflow.backend.database import Database
from kanbanflow.backend.event_bus import EventBus
from kanbanflow.backend.task_board import TaskBoard
from kanbanflow.config_loader import (
    AppConfig,
    default_config,
    load_app_config,
    write_default_config,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config") / "app.yaml"
DEFAULT_DB_PATH = "data/kanbanflow.db"


class Backend:
    """Server-side components sharing one database."""

    def __init__(self, config: AppConfig, db: Database, task_board: TaskBoard,
                 event_bus: EventBus, sessions: SessionManager):
        self.config = config
        self.db = db
        self.task_board = task_board
        self.event_bus = event_bus
        self.sessions = sessions

    async def close(self) -> None:
        await self.event_bus.drain()
        await self.db.close()


async def build_backend(config: AppConfig) -> Backend:
    """Open the database and wire the task board, event bus and sessions."""
    db = Database(config.db_path)
    await db.initialize()
    event_bus = EventBus()
    task_board = TaskBoard(db, event_bus=event_bus)
    await task_board.register_prefixes()
    sessions = SessionManager(
        db,
        task_board,
        cookie_name=config.session.cookie_name,
        ttl_hours=config.session.ttl_hours,
        rate_limit_attempts=config.rate_limit.attempts,
        rate_limit_window=config.rate_limit.window,
        rate_limit_lockout=config.rate_limit.lockout,
    )
    await sessions.purge_expired()
    return Backend(config, db, task_board, event_bus, sessions)


def load_config(path: Path | None) -> AppConfig:
    """Load *path* (or ``config/app.yaml``); fall back to defaults when absent."""
    path = path or DEFAULT_CONFIG_PATH
    if path.exists():
        return load_app_config(path)
    logger.info("No config at %s, using defaults", path)
    return default_config(DEFAULT_DB_PATH)


async def run_server(config: AppConfig) -> None:
    """Start the HTTP server on the configured host and port."""
    import uvicorn
    from kanbanflow.dashboard.app import create_app

    backend = await build_backend(config)
    app = create_app(
        task_board=backend.task_board,
        event_bus=backend.event_bus,
        session_manager=backend.sessions,
        config=config,
    )
    server = uvicorn.Server(
        uvicorn.Config(app, host=config.host, port=config.port, log_level="info")
    )
    logger.info("Serving on http://%s:%d (db=%s)", config.host, config.port, config.db_path)
    try:
        await server.serve()
    finally:
        await backend.close()


async def _init_project(config_path: Path) -> AppConfig:
    created = write_default_config(config_path)
    if created:
        print(f"  Created {config_path}")
    config = load_app_config(config_path)
    backend = await build_backend(config)
    await backend.close()
    print(f"  Database ready at {config.db_path}")
    return config


async def _create_user(config: AppConfig, name: str, email: str, password: str) -> dict:
    backend = await build_backend(config)
    try:
        return await backend.sessions.signup(name, email, password)
    finally:
        await backend.close()


def _cmd_init(args) -> None:
    config_path = Path(args.config) if args.config else DEFAULT_CONFIG_PATH
    print("Initializing kanbanflow")
    asyncio.run(_init_project(config_path))


def _cmd_create_user(args) -> int:
    config = load_config(Path(args.config) if args.config else None)
    try:
        user = asyncio.run(_create_user(config, args.name, args.email, args.password))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(f"Created user {user['id']} <{user['email']}>")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kanbanflow", description="Kanban boards with optimistic drag-and-drop sync",
    )
    parser.add_argument("--config", default=None, help="Path to app.yaml")
    sub = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = sub.add_parser("serve", help="Start the HTTP server")
    serve_parser.add_argument("--host", default=None)
    serve_parser.add_argument("--port", type=int, default=None)

    sub.add_parser("init", help="Write a default config and create the database")

    user_parser = sub.add_parser("create-user", help="Create a user account")
    user_parser.add_argument("--name", required=True)
    user_parser.add_argument("--email", required=True)
    user_parser.add_argument("--password", required=True)

    return parser


def cli_main(argv: list[str] | None = None) -> int:
    from kanbanflow.logging_config import setup_logging
    setup_logging()

    args = build_parser().parse_args(argv)

    if args.command == "init":
        _cmd_init(args)
        return 0
    if args.command == "create-user":
        return _cmd_create_user(args)

    # No subcommand defaults to serve
    config = load_config(Path(args.config) if args.config else None)
    if getattr(args, "host", None):
        config.host = args.host
    if getattr(args, "port", None):
        config.port = args.port
    asyncio.run(run_server(config))
    return 0


if __name__ == "__main__":
    sys.exit(cli_main())
