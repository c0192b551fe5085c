"""Resolve drop targets and task statuses to board columns."""

from __future__ import annotations

from typing import Any

from kanbanflow.domain import DEFAULT_COLUMNS


class ColumnResolver:
    """Look up a board's columns by concrete id or by semantic key.

    Columns are dicts with ``key``, ``title``, ``color`` and, when they come
    from the server, ``id`` and ``order``. A column without an ``id`` is
    addressed by its key.
    """

    def __init__(self, columns: list[dict[str, Any]]) -> None:
        self._columns = sorted(
            (dict(column) for column in columns),
            key=lambda c: c.get("order", 0),
        )

    @classmethod
    def for_board(cls, board: dict[str, Any] | None) -> ColumnResolver:
        """Resolver for *board*; boards without columns get the default lanes."""
        columns = (board or {}).get("columns") or [
            {**column, "order": i} for i, column in enumerate(DEFAULT_COLUMNS)
        ]
        return cls(columns)

    @property
    def columns(self) -> list[dict[str, Any]]:
        return [dict(column) for column in self._columns]

    def resolve(self, target_id: str | None) -> dict[str, Any] | None:
        """Return the column whose id or key equals *target_id*, else ``None``."""
        if target_id is None:
            return None
        for column in self._columns:
            if column.get("id") == target_id or column["key"] == target_id:
                return column
        return None

    def is_column(self, target_id: str | None) -> bool:
        return self.resolve(target_id) is not None

    def for_status(self, status: str) -> dict[str, Any] | None:
        for column in self._columns:
            if column["key"] == status:
                return column
        return None

    def column_id_for(self, status: str) -> str | None:
        """Concrete column id for *status*, or ``None`` when the board has no real column rows."""
        column = self.for_status(status)
        return column.get("id") if column else None

    def placement(self, status: str) -> dict[str, Any]:
        """Fields that put a task in the column for *status*."""
        changes: dict[str, Any] = {"status": status}
        column_id = self.column_id_for(status)
        if column_id is not None:
            changes["column_id"] = column_id
        return changes
