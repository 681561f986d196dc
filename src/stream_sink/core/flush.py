"""
Dual-trigger flush coordination.

Buffered commands are committed as one transaction when either the batch
is full (size trigger, runs synchronously on the caller's thread) or the
flush interval has elapsed since the previous flush (time trigger, runs on
the sink's own timer thread).

Both triggers, every append and every immediate write go through one
FlushCoordinator, which serializes them with a single lock. Two flushes
never run concurrently against the shared statement handle, and a flush
never sees a half-appended buffer.

A failed flush is final for the coordinator: the buffer is kept for
inspection, but nothing is executed or committed afterwards. Recovery is
the host engine's restart from the last checkpoint.
"""

import logging
import threading
import time
from typing import Any, Callable, Optional, Sequence

from .buffer import BatchBuffer
from .commands import WriteCommand
from .config import FlushPolicy
from .connection import ConnectionResource
from .exceptions import CommitError


# Commands listed in the log when a commit fails
COMMIT_FAILURE_PREVIEW = 5


class FlushCoordinator:
    """
    Lock-guarded unit owning the batch buffer and all access to the connection.

    Attributes:
        connection: The sink's ConnectionResource
        policy: Batch size and flush interval
        flush_count: Number of successful (non-empty) flushes
        committed_commands: Total commands committed, batched or immediate
        affected_rows: Sum of affected-row counts reported by the store
        failed_flushes: Number of flushes or immediate writes that failed
        failure: The first CommitError; once set every write re-raises it

    Example:
        >>> coordinator = FlushCoordinator(resource, FlushPolicy(batch_size=3))
        >>> coordinator.add(WriteCommand("INSERT ..."))   # buffered
        >>> coordinator.add(WriteCommand("INSERT ..."))   # buffered
        >>> coordinator.add(WriteCommand("INSERT ..."))   # third command: committed now
        >>> coordinator.pending
        0
    """

    def __init__(
        self,
        connection: ConnectionResource,
        policy: FlushPolicy,
        name: str = "sink",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.connection = connection
        self.policy = policy
        self.name = name
        self._clock = clock
        self._lock = threading.RLock()
        self._buffer = BatchBuffer()
        self._last_flush_at = clock()

        self.flush_count = 0
        self.committed_commands = 0
        self.affected_rows = 0
        self.failed_flushes = 0
        self.failure: Optional[CommitError] = None

        self.logger = logging.getLogger(f"stream_sink.flush.{name}")

    @property
    def pending(self) -> int:
        with self._lock:
            return self._buffer.pending

    @property
    def last_flush_at(self) -> float:
        with self._lock:
            return self._last_flush_at

    @property
    def failed(self) -> bool:
        with self._lock:
            return self.failure is not None

    def raise_if_failed(self) -> None:
        """
        Re-raise the first failure, if any.

        Raises:
            CommitError: If a flush or immediate write has already failed
        """
        with self._lock:
            if self.failure is not None:
                raise self.failure

    def add(self, command: WriteCommand) -> int:
        """
        Buffer a command, flushing synchronously when the batch is full.

        Returns:
            Affected-row count of the flush this call triggered, else 0

        Raises:
            CommitError: If the size-triggered flush fails, or an earlier one did
        """
        with self._lock:
            self.raise_if_failed()
            pending = self._buffer.append(command)
            if pending % self.policy.batch_size == 0:
                return self._flush_locked("size")
            return 0

    def execute_now(self, command: WriteCommand) -> int:
        """
        Execute and commit a single command in its own transaction.

        Used when batch_size is 1; nothing is buffered.

        Raises:
            CommitError: If execution or commit fails (the transaction is rolled
                         back), or an earlier write failed
        """
        with self._lock:
            self.raise_if_failed()
            try:
                affected = self.connection.execute(command)
                self.connection.commit()
            except Exception as e:
                raise self._failure(command, e, (command,), pending=0) from e

            self.committed_commands += 1
            self.affected_rows += affected
            self._last_flush_at = self._clock()
            return affected

    def flush(self, trigger: str = "manual") -> int:
        """
        Commit everything buffered as one transaction.

        Skipped when nothing is pending, so no empty transactions are committed.

        Args:
            trigger: Label for logs ("size", "time", "checkpoint", "close", "manual")

        Returns:
            Sum of affected-row counts for the batch

        Raises:
            CommitError: If any command or the commit fails (the buffer is
                         kept), or an earlier write failed
        """
        with self._lock:
            self.raise_if_failed()
            return self._flush_locked(trigger)

    def seconds_until_due(self) -> float:
        """Seconds until the flush interval has elapsed since the previous flush."""
        with self._lock:
            due_at = self._last_flush_at + self.policy.flush_interval_seconds
            return max(0.0, due_at - self._clock())

    def flush_if_due(self) -> int:
        """
        Time trigger: flush if the interval has elapsed since the previous flush.

        An empty buffer at the deadline restarts the interval without committing.
        """
        with self._lock:
            self.raise_if_failed()
            if self._clock() - self._last_flush_at < self.policy.flush_interval_seconds:
                return 0
            if not self._buffer:
                self._last_flush_at = self._clock()
                return 0
            return self._flush_locked("time")

    def restart_interval(self) -> None:
        with self._lock:
            self._last_flush_at = self._clock()

    def shutdown(self, flush: bool = True) -> None:
        """
        Optionally flush what is left, then close the connection.

        After a failure nothing is flushed and the buffer is discarded. The
        connection is closed even if the final flush fails; that failure is
        re-raised afterwards.
        """
        with self._lock:
            try:
                if flush and self.failure is None:
                    self._flush_locked("close")
                elif self._buffer:
                    self.logger.warning(
                        f"Discarding {self._buffer.pending} uncommitted commands on close"
                    )
            finally:
                self.connection.close()

    def metrics(self) -> dict[str, Any]:
        with self._lock:
            return {
                "pending": self._buffer.pending,
                "flush_count": self.flush_count,
                "committed_commands": self.committed_commands,
                "affected_rows": self.affected_rows,
                "failed_flushes": self.failed_flushes,
            }

    def _flush_locked(self, trigger: str) -> int:
        if not self._buffer:
            return 0

        commands = self._buffer.snapshot()
        affected = 0
        current: Optional[WriteCommand] = None
        try:
            for command in commands:
                current = command
                affected += self.connection.execute(command)
            current = None
            self.connection.commit()
        except Exception as e:
            raise self._failure(current, e, commands, pending=len(commands)) from e

        self._buffer.clear()
        self._last_flush_at = self._clock()
        self.flush_count += 1
        self.committed_commands += len(commands)
        self.affected_rows += affected

        self.logger.info(
            f"Batch of {len(commands)} commands committed "
            f"({affected} rows affected, trigger={trigger})"
        )
        return affected

    def _failure(
        self,
        command: Optional[WriteCommand],
        error: Exception,
        commands: Sequence[WriteCommand],
        pending: int,
    ) -> CommitError:
        # Undo whatever part of the transaction already ran
        self.connection.rollback()
        self.failed_flushes += 1

        original = error.original_error if isinstance(error, CommitError) else error
        if command is not None:
            self.logger.error(
                f"Write failed on command: {command} "
                f"({type(original).__name__}: {original})"
            )
        else:
            preview = "; ".join(str(c) for c in commands[:COMMIT_FAILURE_PREVIEW])
            if len(commands) > COMMIT_FAILURE_PREVIEW:
                preview += f"; ... ({len(commands) - COMMIT_FAILURE_PREVIEW} more)"
            self.logger.error(
                f"Commit of {len(commands)} commands failed "
                f"({type(original).__name__}: {original}): {preview}"
            )

        self.failure = CommitError(command=command, original_error=original, pending=pending)
        return self.failure


class FlushTimer:
    """
    Repeating time trigger owned by one sink.

    A single daemon thread that sleeps until the coordinator's flush interval
    has elapsed since the previous flush, then runs the time-triggered flush.
    The interval is measured from the end of the previous flush, so slow
    commits make the schedule drift instead of overlapping.

    A failed timed flush ends the loop and is kept in `failure`; the sink
    re-raises it on the task thread at the next invoke() or close(). The loop
    also ends, without recording anything, once the coordinator has failed
    on the task thread.
    """

    def __init__(self, coordinator: FlushCoordinator, name: str = "sink"):
        self._coordinator = coordinator
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.name = name
        self.failure: Optional[Exception] = None
        self.logger = logging.getLogger(f"stream_sink.flush.{name}")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the timer thread. Calling start() again is a no-op."""
        if self._thread is not None or self._stop.is_set():
            return
        self._coordinator.restart_interval()
        self._thread = threading.Thread(
            target=self._run, name=f"{self.name}-flush-timer", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the timer and wait for an in-flight timed flush to finish."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                self.logger.warning(f"Flush timer did not stop within {timeout}s")

    def _run(self) -> None:
        while not self._stop.wait(self._coordinator.seconds_until_due()):
            if self._coordinator.failed:
                return
            try:
                self._coordinator.flush_if_due()
            except Exception as e:
                self.failure = e
                self.logger.error(f"Timed flush failed, stopping flush timer: {e}")
                return
