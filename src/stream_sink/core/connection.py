"""
Connection resource owned by one sink instance.

Opened once in open(), used for the whole task lifetime and closed exactly
once in close(). Auto-commit is disabled, so every commit() is an explicit
transaction boundary.
"""

import logging
from enum import Enum
from typing import Any, Optional

from ..connectors.base import Connector
from .commands import WriteCommand
from .exceptions import (
    CommitError,
    IllegalStateError,
    ResourceCloseError,
    SinkConnectionError,
)


logger = logging.getLogger("stream_sink.connection")


class ConnectionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    OPEN = "open"
    CLOSED = "closed"


class ConnectionResource:
    """
    A single long-lived transactional connection.

    Not shared between sink instances and not thread-safe on its own: the
    flush coordinator serializes every call that touches it.

    Attributes:
        state: Current lifecycle state
        target: Credential-free description of the store (for logs and errors)

    Example:
        >>> resource = ConnectionResource(conn_str, ODBCConnector(), target="db/analytics")
        >>> resource.open()
        >>> resource.execute(WriteCommand("DELETE FROM dbo.staging"))
        12
        >>> resource.commit()
        >>> resource.close()
    """

    def __init__(self, connection_string: str, connector: Connector, target: str = "store"):
        self.connection_string = connection_string
        self.connector = connector
        self.target = target
        self.state = ConnectionState.UNINITIALIZED

        self._connection: Optional[Any] = None
        self._statement: Optional[Any] = None

    def open(self) -> None:
        """
        Establish the connection with auto-commit disabled.

        Raises:
            IllegalStateError: If the resource was already opened
            SinkConnectionError: If the store is unreachable or rejects the login
        """
        if self.state is not ConnectionState.UNINITIALIZED:
            raise IllegalStateError("open", self.state.value, subject="connection")

        try:
            connection = self.connector.connect(self.connection_string)
        except Exception as e:
            raise SinkConnectionError(target=self.target, original_error=e) from e

        try:
            # Drivers that ignore the connect-time flag still honour the attribute
            connection.autocommit = False
        except Exception as e:
            _close_quietly("connection", connection)
            raise SinkConnectionError(target=self.target, original_error=e) from e

        self._connection = connection
        self.state = ConnectionState.OPEN
        logger.info(f"Connection to {self.target} opened")

    def statement(self) -> Any:
        """Return the transactional statement handle, creating it on first use."""
        self._require_open("execute")
        if self._statement is None:
            self._statement = self._connection.cursor()
        return self._statement

    def execute(self, command: WriteCommand) -> int:
        """
        Execute one command inside the current transaction.

        Returns:
            Number of affected rows (0 when the driver does not report one)

        Raises:
            Exception: Driver errors propagate; the caller decides how to wrap them
        """
        cursor = self.statement()
        if command.params:
            cursor.execute(command.sql, command.params)
        else:
            cursor.execute(command.sql)
        rowcount = getattr(cursor, "rowcount", -1)
        return rowcount if rowcount is not None and rowcount > 0 else 0

    def commit(self) -> None:
        """
        Commit the current transaction.

        Raises:
            CommitError: If the store rejects the commit
        """
        self._require_open("commit")
        try:
            self._connection.commit()
        except Exception as e:
            raise CommitError(command=None, original_error=e) from e

    def rollback(self) -> None:
        """Roll back the current transaction. Failures are logged, not raised."""
        if self.state is not ConnectionState.OPEN:
            return
        try:
            self._connection.rollback()
        except Exception as e:
            logger.warning(f"Rollback on {self.target} failed: {type(e).__name__}: {e}")

    def close(self) -> None:
        """
        Release the statement handle and the connection.

        Each sub-resource is closed individually; failures are logged as
        ResourceCloseError and swallowed so they never mask an earlier error.
        Calling close() more than once is a no-op.
        """
        if self.state is ConnectionState.CLOSED:
            return

        statement, connection = self._statement, self._connection
        self._statement = None
        self._connection = None
        self.state = ConnectionState.CLOSED

        for resource, handle in (("statement", statement), ("connection", connection)):
            if handle is not None:
                _close_quietly(resource, handle)

        logger.info(f"Connection to {self.target} closed")

    def _require_open(self, operation: str) -> None:
        if self.state is not ConnectionState.OPEN:
            raise IllegalStateError(operation, self.state.value, subject="connection")


def _close_quietly(resource: str, handle: Any) -> None:
    try:
        handle.close()
    except Exception as e:
        logger.warning(str(ResourceCloseError(resource=resource, original_error=e)))
