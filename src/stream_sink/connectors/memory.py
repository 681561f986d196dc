"""In-memory transactional store for testing sinks without a database."""

import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Optional

from .base import Connector


class InMemoryStoreError(Exception):
    """Driver-level error raised by the in-memory store."""

    pass


class InMemoryCursor:
    """Statement handle that records executed commands on its connection."""

    def __init__(self, connection: "InMemoryConnection"):
        self._connection = connection
        self.rowcount = -1
        self.closed = False

    def execute(self, sql: str, params: tuple = ()) -> "InMemoryCursor":
        self.rowcount = self._connection._execute(sql, tuple(params))
        return self

    def close(self) -> None:
        if self._connection.fail_close:
            raise InMemoryStoreError("cursor close failed")
        self.closed = True


class InMemoryConnection:
    """
    Transactional in-memory connection.

    Executed commands stay in the open transaction until commit() moves them
    to `committed` as one unit; rollback() discards them. Every commit is also
    kept in `transactions` so tests can check batch boundaries.

    Overlapping calls from two threads are detected and counted in
    `overlapping_calls` (a correctly serialized sink never produces any).
    """

    def __init__(
        self,
        fail_on: Optional[Callable[[str, tuple], bool]] = None,
        fail_commit_times: int = 0,
        fail_close: bool = False,
        execute_delay: float = 0.0,
        fail_autocommit: bool = False,
    ):
        """
        Initialize the connection.

        Args:
            fail_on: Predicate on (sql, params); matching commands are rejected
            fail_commit_times: Reject this many commit() calls before succeeding
            fail_close: Make close() of the connection and its cursors fail
            execute_delay: Seconds to sleep inside every execute (widens race windows)
            fail_autocommit: Reject switching to manual-commit mode
        """
        self.fail_on = fail_on
        self.fail_commit_times = fail_commit_times
        self.fail_close = fail_close
        self.execute_delay = execute_delay
        self.fail_autocommit = fail_autocommit
        self._autocommit = True

        self.committed: list[tuple[str, tuple]] = []
        self.transactions: list[tuple[tuple[str, tuple], ...]] = []
        self.rollback_count = 0
        self.overlapping_calls = 0
        self.closed = False

        self._uncommitted: list[tuple[str, tuple]] = []
        self._guard = threading.Lock()

    @property
    def autocommit(self) -> bool:
        return self._autocommit

    @autocommit.setter
    def autocommit(self, value: bool) -> None:
        if self.fail_autocommit and not value:
            raise InMemoryStoreError("manual-commit mode not supported")
        self._autocommit = value

    @property
    def commit_count(self) -> int:
        return len(self.transactions)

    @property
    def uncommitted(self) -> list[tuple[str, tuple]]:
        return list(self._uncommitted)

    def cursor(self) -> InMemoryCursor:
        self._check_open()
        return InMemoryCursor(self)

    def commit(self) -> None:
        with self._exclusive():
            self._check_open()
            if self.fail_commit_times > 0:
                self.fail_commit_times -= 1
                raise InMemoryStoreError("commit rejected by store")
            batch = tuple(self._uncommitted)
            self.committed.extend(batch)
            self.transactions.append(batch)
            self._uncommitted.clear()

    def rollback(self) -> None:
        with self._exclusive():
            self._check_open()
            self._uncommitted.clear()
            self.rollback_count += 1

    def close(self) -> None:
        if self.fail_close:
            raise InMemoryStoreError("connection close failed")
        self._uncommitted.clear()
        self.closed = True

    def _execute(self, sql: str, params: tuple) -> int:
        with self._exclusive():
            self._check_open()
            if self.execute_delay:
                time.sleep(self.execute_delay)
            if self.fail_on is not None and self.fail_on(sql, params):
                raise InMemoryStoreError(f"store rejected command: {sql}")
            self._uncommitted.append((sql, params))
            return 1

    def _check_open(self) -> None:
        if self.closed:
            raise InMemoryStoreError("connection is closed")

    @contextmanager
    def _exclusive(self):
        if not self._guard.acquire(blocking=False):
            self.overlapping_calls += 1
            self._guard.acquire()
        try:
            yield
        finally:
            self._guard.release()


class InMemoryConnector(Connector):
    """
    Connector that hands out InMemoryConnection objects.

    Useful for testing sink behaviour (batching, timers, failures) without a
    database. Failure injection options are passed to every connection.

    Example:
        >>> connector = InMemoryConnector()
        >>> sink = TransactionalSinkFunction(config, transform, connector=connector)
        >>> sink.open()
        >>> sink.invoke({"id": 1})
        >>> connector.last.committed
        [('INSERT INTO t (id) VALUES (?)', (1,))]
    """

    def __init__(
        self,
        fail_connect: bool = False,
        fail_on: Optional[Callable[[str, tuple], bool]] = None,
        fail_commit_times: int = 0,
        fail_close: bool = False,
        execute_delay: float = 0.0,
        fail_autocommit: bool = False,
    ):
        self.fail_connect = fail_connect
        self.fail_on = fail_on
        self.fail_commit_times = fail_commit_times
        self.fail_close = fail_close
        self.execute_delay = execute_delay
        self.fail_autocommit = fail_autocommit
        self.connections: list[InMemoryConnection] = []
        self.connection_strings: list[str] = []

    @property
    def last(self) -> InMemoryConnection:
        """Most recently opened connection."""
        if not self.connections:
            raise ValueError("No connection has been opened yet")
        return self.connections[-1]

    def connect(self, connection_string: str) -> Any:
        self.connection_strings.append(connection_string)
        if self.fail_connect:
            raise InMemoryStoreError("login failed")

        connection = InMemoryConnection(
            fail_on=self.fail_on,
            fail_commit_times=self.fail_commit_times,
            fail_close=self.fail_close,
            execute_delay=self.execute_delay,
            fail_autocommit=self.fail_autocommit,
        )
        self.connections.append(connection)
        return connection
