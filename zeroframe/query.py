"""Query descriptions and the naming helpers used to render them as SQL."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class QueryError(ValueError):
    """Raised when a query cannot be described, rendered or run."""


class XsacEvent(str, Enum):
    """Moments at which automatic persistence triggers fire."""

    BEFORE_INSERT = "beinsert"
    BEFORE_UPDATE = "beupdate"
    BEFORE_DELETE = "bedelete"
    AFTER_INSERT = "afinsert"
    AFTER_UPDATE = "afupdate"
    AFTER_DELETE = "afdelete"


_RELATIONS = {
    "AND": " AND ",
    "OR": " OR ",
}

_SYMBOLS = {
    "EQ": " = ",
    "NEQ": " <> ",
    "GT": " > ",
    "LT": " < ",
    "EQGT": " >= ",
    "EQLT": " <= ",
    "LIKE": " LIKE ",
}

_ORDERS = {
    "ASC": " ASC ",
    "DESC": " DESC ",
}


def _mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise QueryError(f"{what} must be an object, got {type(data).__name__}")
    return data


def _int_field(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key) or 0
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise QueryError(f"`{key}` must be an integer, got {value!r}") from exc


@dataclass
class Condition:
    """A comparison, or a relation joining nested conditions."""

    symbol: str = ""
    column: str = ""
    value: str = ""
    relation: list[Condition] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Condition:
        data = _mapping(data, "condition")
        value = data.get("value")
        return cls(
            symbol=str(data.get("symbol") or ""),
            column=str(data.get("column") or ""),
            value="" if value is None else str(value),
            relation=[cls.from_dict(item) for item in data.get("relation") or []],
        )


@dataclass
class OrderBy:
    """One ORDER BY term."""

    column: str = ""
    seq: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> OrderBy:
        data = _mapping(data, "orderby")
        return cls(column=str(data.get("column") or ""), seq=str(data.get("seq") or ""))


@dataclass
class Limit:
    """Paging window of a query."""

    start: int = 0
    length: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Limit:
        data = _mapping(data, "limit")
        return cls(start=_int_field(data, "start"), length=_int_field(data, "length"))


@dataclass
class Query:
    """A complete query request: columns, filter, ordering and paging."""

    columns: list[str] = field(default_factory=list)
    condition: Condition | None = None
    orderby: list[OrderBy] = field(default_factory=list)
    limit: Limit | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Query:
        data = _mapping(data, "query")
        condition = data.get("condition")
        limit = data.get("limit")
        return cls(
            columns=[str(column) for column in data.get("columns") or []],
            condition=Condition.from_dict(condition) if condition is not None else None,
            orderby=[OrderBy.from_dict(item) for item in data.get("orderby") or []],
            limit=Limit.from_dict(limit) if limit is not None else None,
        )


def hump_to_line(name: str) -> str:
    """Turn a camelCase field name into a snake_case column name."""
    if name.startswith("ID"):
        name = name.replace("ID", "id")
    else:
        name = name.replace("ID", "_id")

    parts = []
    for index, char in enumerate(name):
        if "A" <= char <= "Z":
            if index > 0:
                parts.append("_")
            parts.append(char.lower())
        else:
            parts.append(char)
    return "".join(parts)


def line_to_hump(name: str) -> str:
    """Turn a snake_case column name into a camelCase field name."""
    parts = []
    upper_next = False
    for index, char in enumerate(name):
        if char == "_":
            if index > 0:
                upper_next = True
        elif upper_next:
            parts.append(char.upper())
            upper_next = False
        else:
            parts.append(char)
    return "".join(parts)


def parse_json_column_name(name: str) -> str:
    """Render ``column.path`` as a JSON extraction on ``column``."""
    dot = name.find(".")
    if dot <= 0:
        return name
    return f'{hump_to_line(name[:dot])} ->> "$.{name[dot + 1:]}"'


def relation_symbol(name: str) -> str:
    """SQL text joining conditions under the relation ``name``."""
    try:
        return _RELATIONS[name]
    except KeyError:
        raise QueryError(f"relation `{name}` not found") from None


def comparison_symbol(name: str) -> str:
    """SQL operator for the comparison ``name``."""
    try:
        return _SYMBOLS[name]
    except KeyError:
        raise QueryError(f"symbol `{name}` not found") from None


def order_keyword(name: str) -> str:
    """SQL keyword for the sort direction ``name``."""
    try:
        return _ORDERS[name]
    except KeyError:
        raise QueryError(f"order `{name}` not found") from None