"""Paged query operations rendered from :class:`~zeroframe.query.Query`."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar

from zeroframe.core import CoreProcessor
from zeroframe.query import (
    Condition,
    Limit,
    Query,
    QueryError,
    comparison_symbol,
    hump_to_line,
    parse_json_column_name,
    relation_symbol,
)


class QueryOperation(CoreProcessor, ABC):
    """Builds and runs a counted, paged SELECT for one table."""

    max_length: ClassVar[int] = 5000
    distinct_query_template: ClassVar[str]
    distinct_count_template: ClassVar[str]

    def __init__(self, query: Query | None = None, table_name: str = "") -> None:
        super().__init__()
        self.spec = query
        self.table_name = table_name
        self.distinct_id = ""
        self.filter_table_name = ""
        self.columns = ""
        self.conditions = ""
        self.orderby = ""
        self.limit = ""
        self.start = 0
        self.length = 0

    @abstractmethod
    def render_condition(self, condition: Condition) -> str:
        """Render a condition tree as a parenthesised SQL expression."""

    @abstractmethod
    def _render_column(self, column: str) -> str:
        """Render a field name as a column reference."""

    @abstractmethod
    def _limit_clause(self, start: int, length: int) -> str:
        """Render the paging clause."""

    @property
    def _distinct(self) -> bool:
        return bool(self.distinct_id) and bool(self.filter_table_name)

    def build(self, transaction: Any) -> None:
        super().build(transaction)
        if self.spec is None:
            raise QueryError("no query to build")
        self._make_columns()
        self._make_conditions()
        self._make_orderby()
        self._make_limit()

    def add_query(self, query: Query) -> None:
        self.spec = query

    def add_table_name(self, table_name: str) -> None:
        self.table_name = table_name

    def add_distinct_id(self, distinct_id: str) -> None:
        self.distinct_id = distinct_id

    def add_filter_table_name(self, filter_table_name: str) -> None:
        self.filter_table_name = filter_table_name

    def append_condition(self, condition: str) -> None:
        """AND a raw SQL condition onto the built WHERE clause."""
        if not self.conditions:
            self.conditions = f" WHERE ({condition})"
        else:
            self.conditions = f" {self.conditions} AND ({condition})"

    def _make_columns(self) -> None:
        prefix = "a." if self._distinct else ""
        if not self.spec.columns:
            self.columns = f" {prefix}* "
        else:
            rendered = [self._render_column(column) for column in self.spec.columns]
            self.columns = f" {prefix}{(', ' + prefix).join(rendered)} "

    def _make_conditions(self) -> None:
        condition = self.spec.condition
        if condition is None or not condition.symbol:
            self.conditions = ""
        else:
            self.conditions = f" WHERE {self.render_condition(condition)} "

    def _make_orderby(self) -> None:
        if not self.spec.orderby:
            self.orderby = ""
        else:
            orders = [f" {self._render_column(o.column)} {o.seq}" for o in self.spec.orderby]
            self.orderby = f" ORDER BY {','.join(orders)} "

    def _make_limit(self) -> None:
        limit = self.spec.limit or Limit()
        if limit.length > 0:
            self.start = limit.start
            self.length = min(limit.length, self.max_length)
        else:
            self.start = 0
            self.length = 1
        self.limit = self._limit_clause(self.start, self.length)

    def query_sql(self) -> str:
        """The SELECT statement for the current page."""
        if self._distinct:
            sql = self.distinct_query_template
            for placeholder, value in (
                ("{{columns}}", self.columns),
                ("{{tableName}}", self.table_name),
                ("{{conditions}}", self.conditions),
                ("{{orderby}}", self.orderby),
                ("{{limit}}", self.limit),
                ("{{distinctID}}", self.distinct_id),
                ("{{filterTableName}}", self.filter_table_name),
            ):
                sql = sql.replace(placeholder, value)
            return sql
        return (
            f"SELECT{self.columns}FROM {self.table_name} "
            f"{self.conditions} {self.orderby} {self.limit}"
        )

    def count_sql(self) -> str:
        """The statement counting every matching row."""
        if self._distinct:
            sql = self.distinct_count_template
            for placeholder, value in (
                ("{{conditions}}", self.conditions),
                ("{{distinctID}}", self.distinct_id),
                ("{{filterTableName}}", self.filter_table_name),
            ):
                sql = sql.replace(placeholder, value)
            return sql
        return f"SELECT count(1) AS QUERY_COUNT FROM {self.table_name}{self.conditions}"

    def execute(self) -> tuple[list[dict[str, Any]], dict[str, str]]:
        """Run the count and page queries; return rows and paging details."""
        count_sql = self.count_sql()
        counted = self.query(count_sql)
        if not counted:
            raise QueryError(f"query -> {count_sql} result error")
        total = next(iter(counted[0].values()))
        rows = self.query(self.query_sql())
        expands = {
            "start": str(self.start),
            "length": str(self.length),
            "total": str(int(total)),
        }
        return rows, expands


class MysqlQueryOperation(QueryOperation):
    """Query operation speaking the MySQL dialect."""

    distinct_query_template = """
    SELECT
        {{columns}}
    FROM
        (SELECT
            distinct {{distinctID}} AS row095c_id
            FROM
                {{filterTableName}}
                {{conditions}}) t,
                {{tableName}} a
    WHERE
        t.row095c_id = a.{{distinctID}}
        {{orderby}} {{limit}}
"""

    distinct_count_template = """
    SELECT
        count(distinct {{distinctID}}) AS QUERY_COUNT
    FROM
        {{filterTableName}}
    {{conditions}}
"""

    def render_condition(self, condition: Condition) -> str:
        if not condition.relation:
            symbol = comparison_symbol(condition.symbol)
            column = condition.column
            if column.startswith("@"):
                rendered = column.replace("@", "")
            elif column.find(".") > 1:
                rendered = parse_json_column_name(column)
            else:
                rendered = f"`{hump_to_line(column)}`"
            return f"({rendered} {symbol} '{condition.value}')"

        joiner = relation_symbol(condition.symbol)
        parts = [self.render_condition(item) for item in condition.relation]
        return f"({joiner.join(parts)})"

    def _render_column(self, column: str) -> str:
        if column.startswith("@"):
            return column.replace("@", "")
        return f"`{hump_to_line(column)}`"

    def _limit_clause(self, start: int, length: int) -> str:
        return f" LIMIT {start} ,{length} "