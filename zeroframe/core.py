"""Base processor running SQL within a DB-API connection or transaction."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from zeroframe.query import QueryError

_FETCH_DATE_SQL = "SELECT current_timestamp"


class CoreProcessor:
    """Executes statements through the connection handed to :meth:`build`."""

    def __init__(self) -> None:
        self.transaction: Any = None

    def build(self, transaction: Any) -> None:
        """Bind the processor to a DB-API connection or transaction."""
        self.transaction = transaction

    @contextmanager
    def _cursor(self) -> Iterator[Any]:
        if self.transaction is None:
            raise QueryError("processor has not been built with a transaction")
        cursor = self.transaction.cursor()
        try:
            yield cursor
        finally:
            cursor.close()

    def execute(self, sql: str, *args: Any) -> int:
        """Run a statement and return the number of rows it touched."""
        with self._cursor() as cursor:
            cursor.execute(sql, args)
            return cursor.rowcount

    def query(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        """Run a query and return its rows as column-keyed dictionaries."""
        with self._cursor() as cursor:
            cursor.execute(sql, args)
            return self.parse_rows(cursor)

    def parse_rows(self, cursor: Any) -> list[dict[str, Any]]:
        """Read every remaining row of ``cursor`` into dictionaries."""
        if cursor.description is None:
            return []
        columns = [column[0] for column in cursor.description]
        return [dict(zip(columns, row)) for row in cursor]

    def database_datetime(self) -> datetime:
        """Current timestamp as reported by the database."""
        rows = self.query(_FETCH_DATE_SQL)
        if not rows:
            raise QueryError(f"query -> {_FETCH_DATE_SQL} result error")
        value = next(iter(rows[0].values()), None)
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value)
            except ValueError as exc:
                raise QueryError(f"unreadable database timestamp {value!r}") from exc
        raise QueryError(f"unreadable database timestamp {value!r}")