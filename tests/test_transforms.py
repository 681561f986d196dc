"""
Tests for write commands and record transforms.

Validates:
- WriteCommand coercion from transform results
- Transform failures become TransformError
- INSERT and MERGE generation from a column map
- Column map and merge key validation
"""

import pytest

from stream_sink.core.commands import WriteCommand, apply_transform
from stream_sink.core.exceptions import ConfigurationError, TransformError
from stream_sink.transforms import InsertTransform, MergeTransform, SQLTemplateTransform


def test_write_command_is_immutable():
    """Test that a produced command cannot be modified."""
    command = WriteCommand("INSERT INTO t (a) VALUES (?)", [1])

    assert command.params == (1,)  # lists are stored as tuples
    with pytest.raises(AttributeError):
        command.sql = "DROP TABLE t"


def test_write_command_rejects_empty_sql():
    """Test that an empty statement is never produced."""
    with pytest.raises(ValueError):
        WriteCommand("   ")


def test_coerce_accepts_supported_shapes():
    """Test that strings and (sql, params) pairs are normalized."""
    from_str = WriteCommand.coerce("DELETE FROM t")
    from_pair = WriteCommand.coerce(("UPDATE t SET a = ?", [5]))
    existing = WriteCommand("SELECT 1")

    assert from_str == WriteCommand("DELETE FROM t")
    assert from_pair == WriteCommand("UPDATE t SET a = ?", (5,))
    assert WriteCommand.coerce(existing) is existing


def test_coerce_rejects_other_values():
    """Test that an unusable transform result is a type error."""
    with pytest.raises(TypeError):
        WriteCommand.coerce({"sql": "SELECT 1"})


def test_apply_transform_wraps_errors_with_record():
    """Test that transform failures carry the record and the original error."""
    record = {"name": "no id here"}

    with pytest.raises(TransformError) as exc_info:
        apply_transform(lambda r: WriteCommand("INSERT ...", (r["id"],)), record)

    error = exc_info.value
    assert error.record is record
    assert isinstance(error.original_error, KeyError)
    assert isinstance(error.__cause__, KeyError)


def test_apply_transform_wraps_bad_return_type():
    """Test that returning None from a transform is reported, not ignored."""
    with pytest.raises(TransformError) as exc_info:
        apply_transform(lambda r: None, {"id": 1})

    assert isinstance(exc_info.value.original_error, TypeError)


def test_insert_transform_binds_parameters():
    """Test INSERT generation with values in column_map order."""
    transform = InsertTransform(
        "dbo.page_views",
        {"session_id": lambda r: r["session"], "url": lambda r: r["url"]},
    )

    command = transform({"session": "s1", "url": "/home"})

    assert command.sql == "INSERT INTO dbo.page_views (session_id, url) VALUES (?, ?)"
    assert command.params == ("s1", "/home")


def test_merge_transform_builds_upsert():
    """Test that MERGE matches on keys and only updates non-key columns."""
    transform = MergeTransform(
        target_table="dbo.sessions",
        merge_keys=["session_id"],
        column_map={
            "session_id": lambda r: r["session"],
            "page_count": lambda r: r["pages"],
            "last_seen": lambda r: r["ts"],
        },
    )

    command = transform({"session": "s1", "pages": 3, "ts": 1700000000})

    assert command.sql.startswith("MERGE dbo.sessions AS target")
    assert "USING (SELECT ?, ?, ?) AS source (session_id, page_count, last_seen)" in command.sql
    assert "ON target.session_id = source.session_id" in command.sql
    assert (
        "WHEN MATCHED THEN UPDATE SET page_count = source.page_count, last_seen = source.last_seen"
        in command.sql
    )
    assert "session_id = source.session_id," not in command.sql
    assert command.sql.rstrip().endswith(
        "VALUES (source.session_id, source.page_count, source.last_seen);"
    )
    assert command.params == ("s1", 3, 1700000000)


def test_merge_transform_without_non_key_columns_skips_update():
    """Test that an all-key MERGE only inserts."""
    transform = MergeTransform(
        "dbo.seen", ["a", "b"], {"a": lambda r: r[0], "b": lambda r: r[1]}
    )

    command = transform((1, 2))

    assert "WHEN MATCHED" not in command.sql
    assert "ON target.a = source.a AND target.b = source.b" in command.sql


def test_merge_transform_validates_keys():
    """Test that empty or unmapped merge keys are rejected at construction."""
    column_map = {"id": lambda r: r["id"]}

    with pytest.raises(ConfigurationError):
        MergeTransform("dbo.t", [], column_map)

    with pytest.raises(ConfigurationError) as exc_info:
        MergeTransform("dbo.t", ["missing"], column_map)
    assert "missing" in str(exc_info.value)


def test_column_extractor_failure_names_the_column():
    """Test that a failing extractor reports which column broke."""
    transform = InsertTransform("dbo.t", {"id": lambda r: r["id"], "amount": lambda r: r["amt"]})

    with pytest.raises(TransformError) as exc_info:
        apply_transform(transform, {"id": 1})

    assert "amount" in str(exc_info.value)


def test_sql_template_transform_formats_record():
    """Test rendering a template from a mapping record."""
    transform = SQLTemplateTransform("UPDATE dbo.counters SET hits = hits + {n} WHERE page = '{page}'")

    command = transform({"n": 3, "page": "home"})

    assert command.sql == "UPDATE dbo.counters SET hits = hits + 3 WHERE page = 'home'"
    assert command.params == ()
