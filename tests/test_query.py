import pytest

from zeroframe.query import (
    Condition,
    Limit,
    OrderBy,
    Query,
    QueryError,
    comparison_symbol,
    hump_to_line,
    line_to_hump,
    order_keyword,
    parse_json_column_name,
    relation_symbol,
)


def test_query_from_dict_nested():
    query = Query.from_dict(
        {
            "columns": ["userName", "age"],
            "condition": {
                "symbol": "OR",
                "relation": [
                    {"symbol": "EQ", "column": "userName", "value": "bob"},
                    {"symbol": "GT", "column": "age", "value": 30},
                ],
            },
            "orderby": [{"column": "age", "seq": "DESC"}],
            "limit": {"start": 5, "length": 20},
        }
    )
    assert query == Query(
        columns=["userName", "age"],
        condition=Condition(
            symbol="OR",
            relation=[
                Condition(symbol="EQ", column="userName", value="bob"),
                Condition(symbol="GT", column="age", value="30"),
            ],
        ),
        orderby=[OrderBy(column="age", seq="DESC")],
        limit=Limit(start=5, length=20),
    )


def test_query_from_empty_dict_uses_defaults():
    query = Query.from_dict({})
    assert query.columns == []
    assert query.condition is None
    assert query.orderby == []
    assert query.limit is None


def test_from_dict_rejects_non_mapping():
    with pytest.raises(QueryError):
        Query.from_dict(["columns"])
    with pytest.raises(QueryError):
        Condition.from_dict("EQ")


def test_limit_rejects_non_integer():
    with pytest.raises(QueryError, match="start"):
        Limit.from_dict({"start": "first", "length": 1})


def test_hump_to_line_pinned_values():
    assert hump_to_line("userName") == "user_name"
    assert hump_to_line("parentID") == "parent_id"


def test_hump_to_line_keeps_lowercase_names():
    assert hump_to_line("name") == "name"


@pytest.mark.parametrize("name", ["userName", "createTime", "ageInYears", "plain"])
def test_hump_line_round_trip(name):
    assert line_to_hump(hump_to_line(name)) == name


@pytest.mark.parametrize("name", ["userName", "IDCard", "ownerID", "ABC"])
def test_hump_to_line_has_no_uppercase(name):
    result = hump_to_line(name)
    assert result == result.lower()


def test_line_to_hump_drops_leading_underscore():
    assert line_to_hump("_name") == "name"


def test_parse_json_column_name():
    assert parse_json_column_name("extInfo.name") == 'ext_info ->> "$.name"'


@pytest.mark.parametrize("name", ["column", ".column"])
def test_parse_json_column_name_without_path(name):
    assert parse_json_column_name(name) == name


def test_symbol_tables():
    assert comparison_symbol("EQ") == " = "
    assert comparison_symbol("NEQ") == " <> "
    assert comparison_symbol("LIKE") == " LIKE "
    assert relation_symbol("AND") == " AND "
    assert relation_symbol("OR") == " OR "
    assert order_keyword("ASC") == " ASC "
    assert order_keyword("DESC") == " DESC "


def test_unknown_symbols_raise():
    with pytest.raises(QueryError, match="symbol `BAD` not found"):
        comparison_symbol("BAD")
    with pytest.raises(QueryError, match="relation `XOR` not found"):
        relation_symbol("XOR")
    with pytest.raises(QueryError):
        order_keyword("UP")