"""
Transactional sink function: the entry point the host engine calls.

Receives one record at a time, turns it into a WriteCommand with the
record transform, and either commits it immediately (batch_size == 1) or
hands it to the flush coordinator, which commits batches on size or time.
"""

import logging
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from ..connectors.base import Connector
from ..engine import SinkContext, SinkFunction
from .commands import RecordTransform, apply_transform
from .config import SinkConfig
from .connection import ConnectionResource
from .exceptions import CommitError, IllegalStateError
from .flush import FlushCoordinator, FlushTimer


T = TypeVar("T")


class SinkState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    CLOSED = "closed"


class TransactionalSinkFunction(SinkFunction[T], Generic[T]):
    """
    Sink that writes each record to a transactional store.

    Lifecycle: uninitialized -> open() -> ready -> invoke()* -> close() -> closed.

    With batch_size == 1 every invoke() executes and commits its command before
    returning, so a slow store backpressures the engine directly. With a larger
    batch size invoke() only buffers, unless the command fills the batch, in
    which case it blocks until that batch is committed. A repeating timer
    commits partial batches once the flush interval has passed.

    On close() the timer is stopped first, then any buffered commands are
    committed, then the connection is released.

    Attributes:
        config: Connection parameters and flush policy
        transform: Record -> WriteCommand function supplied by the pipeline author
        state: Current lifecycle state
        invoked: Number of records accepted by invoke()

    Example:
        >>> sink = TransactionalSinkFunction(
        ...     config=SinkConfig(
        ...         connection=ConnectionParams(connection_string=conn_str),
        ...         flush=FlushPolicy(batch_size=500, flush_interval_millis=1000),
        ...     ),
        ...     transform=InsertTransform("dbo.clicks", {"id": lambda r: r["id"]}),
        ... )
        >>> sink.open()
        >>> for record in records:
        ...     sink.invoke(record)
        >>> sink.close()
    """

    def __init__(
        self,
        config: SinkConfig,
        transform: RecordTransform,
        connector: Optional[Connector] = None,
        name: str = "sink",
    ):
        """
        Initialize the sink. No connection is made until open().

        Args:
            config: Connection parameters and flush policy
            transform: Function turning one record into a WriteCommand
                       (or a SQL string, or an (sql, params) pair)
            connector: Store connector (defaults to ODBCConnector)
            name: Used in thread names and logger names

        Raises:
            ConfigurationError: If no connection target is configured
        """
        self.config = config
        self.transform = transform
        self.name = name
        self.state = SinkState.UNINITIALIZED
        self.invoked = 0

        # Fail fast on a missing connection target
        self._connection_string = config.connection.to_connection_string()
        self._connector = connector
        self._coordinator: Optional[FlushCoordinator] = None
        self._timer: Optional[FlushTimer] = None
        self._failure_reported = False

        self.logger = logging.getLogger(f"stream_sink.sink.{name}")

    @property
    def pending(self) -> int:
        """Number of buffered commands not yet committed."""
        return self._coordinator.pending if self._coordinator else 0

    @property
    def timer_failure(self) -> Optional[Exception]:
        """Error that stopped the flush timer, if a timed flush failed."""
        return self._timer.failure if self._timer else None

    def open(self, task_config: Optional[dict[str, Any]] = None) -> None:
        """
        Open the connection for this task.

        Args:
            task_config: Engine-provided task configuration (unused by this sink)

        Raises:
            IllegalStateError: If the sink was already opened
            SinkConnectionError: If the store cannot be reached; fatal to task startup
        """
        if self.state is not SinkState.UNINITIALIZED:
            raise IllegalStateError("open", self.state.value)

        self.logger.info(
            f"Opening sink '{self.name}' to {self.config.connection.describe()} "
            f"(batch_size={self.config.flush.batch_size}, "
            f"flush_interval={self.config.flush.flush_interval_millis}ms)"
        )

        connector = self._connector
        if connector is None:
            from ..connectors.odbc import ODBCConnector
            connector = ODBCConnector()

        connection = ConnectionResource(
            self._connection_string, connector, target=self.config.connection.describe()
        )
        connection.open()

        self._coordinator = FlushCoordinator(connection, self.config.flush, name=self.name)
        if not self.config.flush.immediate:
            self._timer = FlushTimer(self._coordinator, name=self.name)
        self.state = SinkState.READY

    def invoke(self, record: T, context: Optional[SinkContext] = None) -> None:
        """
        Write one record.

        Args:
            record: Input record from the stream
            context: Optional engine context (timestamp, watermark)

        Raises:
            IllegalStateError: If called before open() or after close()
            TransformError: If the record cannot be turned into a command
            CommitError: If the immediate write, a size-triggered flush, or an
                         earlier timed flush failed
        """
        if self.state is not SinkState.READY:
            raise IllegalStateError("invoke", self.state.value)
        self._raise_timer_failure()
        self._report_failure(self._coordinator.raise_if_failed)

        command = apply_transform(self.transform, record)

        if self.config.flush.immediate:
            self._report_failure(self._coordinator.execute_now, command)
        else:
            self._report_failure(self._coordinator.add, command)
            self._timer.start()

        self.invoked += 1

    def flush(self) -> int:
        """
        Commit everything buffered now.

        Returns:
            Affected-row count of the flush (0 if nothing was pending)
        """
        if self.state is not SinkState.READY:
            raise IllegalStateError("flush", self.state.value)
        self._raise_timer_failure()
        return self._report_failure(self._coordinator.flush, "manual")

    def snapshot_state(self, checkpoint_id: int) -> None:
        """
        Checkpoint hook: commit buffered commands before the barrier completes.

        Everything invoked before the checkpoint is durable once the engine
        reports the checkpoint as complete.
        """
        if self.state is not SinkState.READY:
            raise IllegalStateError("snapshot_state", self.state.value)
        self._raise_timer_failure()
        affected = self._report_failure(self._coordinator.flush, "checkpoint")
        self.logger.debug(f"Checkpoint {checkpoint_id}: flushed ({affected} rows affected)")

    def close(self) -> None:
        """
        Stop the timer, commit what is buffered, and release the connection.

        If a flush has already failed the remaining buffer is discarded
        instead: the engine will replay those records from the last checkpoint.
        The connection is released even when the final flush fails; that
        failure (or an earlier timed-flush failure) is then re-raised.
        """
        if self.state is SinkState.CLOSED:
            return
        if self.state is SinkState.UNINITIALIZED:
            self.state = SinkState.CLOSED
            return

        self.state = SinkState.CLOSED
        if self._timer is not None:
            self._timer.stop()

        timer_failure = self._timer.failure if self._timer is not None else None
        clean = timer_failure is None and not self._coordinator.failed
        try:
            self._coordinator.shutdown(flush=clean)
        finally:
            metrics = self._coordinator.metrics()
            self.logger.info(
                f"Sink '{self.name}' closed: {self.invoked} records, "
                f"{metrics['committed_commands']} committed in "
                f"{metrics['flush_count']} batches"
            )

        if timer_failure is not None and not self._failure_reported:
            raise timer_failure

    def metrics(self) -> dict[str, Any]:
        metrics = self._coordinator.metrics() if self._coordinator else {}
        return {"invoked": self.invoked, "state": self.state.value, **metrics}

    def _raise_timer_failure(self) -> None:
        if self._timer is not None and self._timer.failure is not None:
            self._failure_reported = True
            raise self._timer.failure

    def _report_failure(self, operation, *args):
        # A failed write ends all writing; the timer must not retry the batch
        try:
            return operation(*args)
        except CommitError:
            self._failure_reported = True
            if self._timer is not None:
                self._timer.stop()
            raise
