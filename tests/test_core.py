import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from zeroframe.core import CoreProcessor
from zeroframe.query import QueryError

ROWS = [("u1", "alice", 30), ("u2", "bob", 25)]


@pytest.fixture
def processor():
    conn = sqlite3.connect(":memory:")
    conn.execute("CREATE TABLE users (id TEXT, user_name TEXT, age INTEGER)")
    conn.executemany("INSERT INTO users VALUES (?, ?, ?)", ROWS)
    proc = CoreProcessor()
    proc.build(conn)
    yield proc
    conn.close()


class _EmptyCursor:
    description = (("current_timestamp",),)

    def execute(self, sql, args):
        self.sql = sql

    def __iter__(self):
        return iter(())

    def close(self):
        pass


class _EmptyConnection:
    def cursor(self):
        return _EmptyCursor()


def test_query_returns_dicts(processor):
    rows = processor.query("SELECT id, user_name, age FROM users ORDER BY id")
    assert rows == [
        {"id": id_, "user_name": name, "age": age} for id_, name, age in ROWS
    ]


def test_query_with_parameters(processor):
    rows = processor.query("SELECT user_name FROM users WHERE age > ?", 26)
    assert rows == [{"user_name": "alice"}]


def test_query_without_matches_is_empty(processor):
    assert processor.query("SELECT * FROM users WHERE age > ?", 100) == []


def test_execute_returns_rowcount(processor):
    assert processor.execute("UPDATE users SET age = age + 1") == len(ROWS)
    ages = sorted(row["age"] for row in processor.query("SELECT age FROM users"))
    assert ages == sorted(age + 1 for _, _, age in ROWS)


def test_database_datetime_is_current(processor):
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    value = processor.database_datetime()
    assert now - timedelta(minutes=1) <= value <= now + timedelta(minutes=1)


def test_database_datetime_without_row_raises():
    proc = CoreProcessor()
    proc.build(_EmptyConnection())
    with pytest.raises(QueryError, match="SELECT current_timestamp"):
        proc.database_datetime()


def test_unbuilt_processor_raises():
    with pytest.raises(QueryError):
        CoreProcessor().query("SELECT 1")


def test_database_errors_propagate(processor):
    with pytest.raises(sqlite3.OperationalError):
        processor.query("SELECT * FROM missing_table")