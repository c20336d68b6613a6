"""Adapters for stats-API row/column result tables."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ResultSetTable:
    """One `{name, headers, rowSet}` table with case-insensitive column lookup."""

    name: str
    headers: list[str]
    rows: list[list[Any]]
    _index: dict[str, int] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        for position, header in enumerate(self.headers):
            self._index.setdefault(str(header).upper(), position)

    def __len__(self) -> int:
        return len(self.rows)

    def has_column(self, column: str) -> bool:
        return column.upper() in self._index

    def value(self, row: list[Any], column: str, default: Any = None) -> Any:
        position = self._index.get(column.upper())
        if position is None or position >= len(row):
            return default
        value = row[position]
        return default if value is None else value

    @classmethod
    def from_payload(cls, payload: Any) -> ResultSetTable | None:
        if not isinstance(payload, dict):
            return None
        headers = payload.get("headers")
        rows = payload.get("rowSet")
        if not isinstance(headers, list) or not isinstance(rows, list):
            return None
        return cls(
            name=str(payload.get("name") or ""),
            headers=[str(header) for header in headers],
            rows=[row for row in rows if isinstance(row, list)],
        )


def result_tables(payload: dict[str, Any]) -> list[ResultSetTable]:
    """All tables in a response, whether it uses `resultSet` or `resultSets`."""
    raw_sets: list[Any] = []
    single = payload.get("resultSet")
    if isinstance(single, dict):
        raw_sets.append(single)
    elif isinstance(single, list):
        raw_sets.extend(single)
    many = payload.get("resultSets")
    if isinstance(many, list):
        raw_sets.extend(many)
    elif isinstance(many, dict):
        raw_sets.append(many)
    tables = [ResultSetTable.from_payload(item) for item in raw_sets]
    return [table for table in tables if table is not None]


def select_table(
    payload: dict[str, Any], *, name: str = "", required_column: str = ""
) -> ResultSetTable | None:
    """Pick the table called `name`, else one with `required_column`, else the first with rows."""
    tables = result_tables(payload)
    if not tables:
        return None
    if name:
        for table in tables:
            if table.name.lower() == name.lower():
                return table
    if required_column:
        for table in tables:
            if table.has_column(required_column) and len(table) > 0:
                return table
    for table in tables:
        if len(table) > 0:
            return table
    return tables[0]
