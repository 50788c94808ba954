"""Paged query operations in the PostgreSQL dialect."""

from __future__ import annotations

from zeroframe.operation import QueryOperation
from zeroframe.query import Condition, comparison_symbol, hump_to_line, relation_symbol


class PostgresQueryOperation(QueryOperation):
    """Query operation speaking the PostgreSQL dialect."""

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
        t.row0c_id = a.{{distinctID}}
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
            return f"(\"{hump_to_line(condition.column)}\" {symbol} '{condition.value}')"

        joiner = relation_symbol(condition.symbol)
        parts = [self.render_condition(item) for item in condition.relation]
        return f"({joiner.join(parts)})"

    def _render_column(self, column: str) -> str:
        return f'"{hump_to_line(column)}"'

    def _limit_clause(self, start: int, length: int) -> str:
        return f" OFFSET {start} LIMIT {length} "

    def query_sql(self) -> str:
        """The SELECT statement for the current page, with OFFSET/LIMIT paging."""
        return super().query_sql()

    def count_sql(self) -> str:
        """The statement counting every matching row."""
        return super().count_sql()