"""
Tests for the connection resource.

Validates:
- Open failure is a SinkConnectionError
- Auto-commit disabled and statement handle reuse
- Commit failure is a CommitError
- Close is best-effort, individual per sub-resource, and idempotent
"""

import logging

import pytest

from stream_sink.connectors.memory import InMemoryConnector
from stream_sink.core.commands import WriteCommand
from stream_sink.core.connection import ConnectionResource, ConnectionState
from stream_sink.core.exceptions import CommitError, IllegalStateError, SinkConnectionError


CONN_STR = "DSN=memory"


def test_open_disables_autocommit(connector):
    """Test that the opened connection is in manual-commit mode."""
    resource = ConnectionResource(CONN_STR, connector)

    resource.open()

    assert resource.state is ConnectionState.OPEN
    assert connector.last.autocommit is False
    assert connector.connection_strings == [CONN_STR]


def test_open_failure_is_connection_error():
    """Test that an unreachable store fails open() with context."""
    resource = ConnectionResource(CONN_STR, InMemoryConnector(fail_connect=True), target="db/x")

    with pytest.raises(SinkConnectionError) as exc_info:
        resource.open()

    assert exc_info.value.target == "db/x"
    assert "login failed" in str(exc_info.value)
    assert resource.state is ConnectionState.UNINITIALIZED


def test_open_twice_is_illegal(connector):
    """Test that a resource is opened exactly once."""
    resource = ConnectionResource(CONN_STR, connector)
    resource.open()

    with pytest.raises(IllegalStateError):
        resource.open()


def test_execute_reuses_statement_and_reports_rowcount(connector):
    """Test that commands run on one statement handle inside one transaction."""
    resource = ConnectionResource(CONN_STR, connector)
    resource.open()

    first = resource.statement()
    affected = resource.execute(WriteCommand("INSERT INTO t (a) VALUES (?)", (1,)))
    affected += resource.execute(WriteCommand("INSERT INTO t (a) VALUES (2)"))

    assert resource.statement() is first
    assert affected == 2
    assert connector.last.committed == []  # not committed yet

    resource.commit()

    assert connector.last.transactions == [
        (("INSERT INTO t (a) VALUES (?)", (1,)), ("INSERT INTO t (a) VALUES (2)", ())),
    ]


def test_commit_failure_is_commit_error():
    """Test that a rejected commit surfaces as CommitError."""
    connector = InMemoryConnector(fail_commit_times=1)
    resource = ConnectionResource(CONN_STR, connector)
    resource.open()
    resource.execute(WriteCommand("INSERT INTO t (a) VALUES (1)"))

    with pytest.raises(CommitError) as exc_info:
        resource.commit()

    assert exc_info.value.command is None
    assert "commit rejected" in str(exc_info.value)


def test_rollback_discards_open_transaction(connector):
    """Test that rollback leaves nothing behind."""
    resource = ConnectionResource(CONN_STR, connector)
    resource.open()
    resource.execute(WriteCommand("INSERT INTO t (a) VALUES (1)"))

    resource.rollback()

    assert connector.last.uncommitted == []
    assert connector.last.rollback_count == 1


def test_execute_before_open_is_illegal(connector):
    """Test that the statement handle is unavailable before open()."""
    resource = ConnectionResource(CONN_STR, connector)

    with pytest.raises(IllegalStateError):
        resource.execute(WriteCommand("SELECT 1"))


def test_close_swallows_and_logs_failures(caplog):
    """Test that failing to close statement and connection is logged, not raised."""
    connector = InMemoryConnector(fail_close=True)
    resource = ConnectionResource(CONN_STR, connector)
    resource.open()
    resource.statement()

    with caplog.at_level(logging.WARNING, logger="stream_sink.connection"):
        resource.close()

    assert resource.state is ConnectionState.CLOSED
    messages = [record.getMessage() for record in caplog.records]
    assert any("Failed to close statement" in m for m in messages)
    assert any("Failed to close connection" in m for m in messages)


def test_close_is_idempotent(connector):
    """Test that closing twice releases the connection once."""
    resource = ConnectionResource(CONN_STR, connector)
    resource.open()

    resource.close()
    resource.close()

    assert connector.last.closed is True
    with pytest.raises(IllegalStateError):
        resource.commit()


def test_open_releases_connection_when_autocommit_rejected():
    """Test that a connection refusing manual-commit mode is closed before failing open()."""
    connector = InMemoryConnector(fail_autocommit=True)
    resource = ConnectionResource(CONN_STR, connector)

    with pytest.raises(SinkConnectionError) as exc_info:
        resource.open()

    assert "manual-commit" in str(exc_info.value)
    assert connector.last.closed is True
    assert resource.state is ConnectionState.UNINITIALIZED
