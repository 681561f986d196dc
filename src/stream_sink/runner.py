"""
Local driver for sink functions.

Feeds a finite iterable of records through a sink's open -> invoke* -> close
lifecycle the way a host engine task would, with progress logging and an
optional checkpoint every N records. Meant for examples, backfills and tests;
it is not a streaming engine.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from .core.config import CheckpointConfig
from .core.sink import TransactionalSinkFunction
from .engine import LocalEnvironment, SinkContext


@dataclass
class RunResult:
    """
    Result of a local run.

    Attributes:
        invoked_count: Records passed to invoke() successfully
        committed_count: Commands committed to the store
        flush_count: Batches committed (immediate writes are not batches)
        checkpoint_count: Checkpoints taken during the run
        duration_seconds: Wall-clock duration of the run
    """

    invoked_count: int
    committed_count: int
    flush_count: int
    checkpoint_count: int
    duration_seconds: float


class LocalRunner:
    """
    Runs records through one sink function in the current thread.

    Errors are fail-fast: the first failure is logged, the sink is closed and
    the error propagates. Records are never skipped.

    Example:
        >>> runner = LocalRunner(
        ...     name="clicks-backfill",
        ...     records=read_clicks("clicks.jsonl"),
        ...     sink_function=TransactionalSink(params).build(transform),
        ...     checkpoint_every=10_000,
        ... )
        >>> result = runner.run()
        >>> print(f"Committed {result.committed_count} rows in {result.duration_seconds:.1f}s")
    """

    def __init__(
        self,
        name: str,
        records: Iterable[Any],
        sink_function: TransactionalSinkFunction,
        environment: Optional[LocalEnvironment] = None,
        checkpoint: Optional[CheckpointConfig] = None,
        checkpoint_every: int = 0,
        progress_every: int = 1000,
    ):
        """
        Initialize the runner.

        Args:
            name: Identifier for this run (used in logging)
            records: Records to write, in order
            sink_function: Sink to drive
            environment: Environment receiving the checkpoint settings
                         (a fresh LocalEnvironment by default)
            checkpoint: Checkpoint settings to apply before the run
            checkpoint_every: Call snapshot_state() every N records (0 disables)
            progress_every: Log progress every N records

        Raises:
            ValueError: If checkpoint_every or progress_every is negative
        """
        if checkpoint_every < 0:
            raise ValueError(f"checkpoint_every must be >= 0, got {checkpoint_every}")
        if progress_every < 0:
            raise ValueError(f"progress_every must be >= 0, got {progress_every}")

        self.name = name
        self.records = records
        self.sink_function = sink_function
        self.environment = environment or LocalEnvironment()
        self.checkpoint = checkpoint
        self.checkpoint_every = checkpoint_every
        self.progress_every = progress_every

        self.logger = logging.getLogger(f"stream_sink.runner.{name}")

    def run(self) -> RunResult:
        """
        Open the sink, write every record, and close the sink.

        Returns:
            RunResult with counts and duration

        Raises:
            Exception: The first error raised by the sink, after it was closed
        """
        if self.checkpoint is not None:
            self.checkpoint.apply_to(self.environment)

        start_time = time.time()
        invoked_count = 0
        checkpoint_count = 0

        self.logger.info(f"Run '{self.name}' starting")
        self.sink_function.open({"run": self.name})

        try:
            for record in self.records:
                self.sink_function.invoke(record, SinkContext(timestamp=int(time.time() * 1000)))
                invoked_count += 1

                if self.checkpoint_every and invoked_count % self.checkpoint_every == 0:
                    checkpoint_count += 1
                    self.sink_function.snapshot_state(checkpoint_count)

                if self.progress_every and invoked_count % self.progress_every == 0:
                    self.logger.info(
                        f"Progress: {invoked_count} records - "
                        f"pending: {self.sink_function.pending}"
                    )
        except Exception as e:
            self.logger.error(
                f"Run '{self.name}' halted after {invoked_count} records: "
                f"{type(e).__name__}: {e}"
            )
            self._close_after_failure()
            raise

        self.sink_function.close()
        duration_seconds = time.time() - start_time

        metrics = self.sink_function.metrics()
        result = RunResult(
            invoked_count=invoked_count,
            committed_count=metrics.get("committed_commands", 0),
            flush_count=metrics.get("flush_count", 0),
            checkpoint_count=checkpoint_count,
            duration_seconds=duration_seconds,
        )

        self.logger.info(
            f"Run '{self.name}' completed: {result.invoked_count} records, "
            f"{result.committed_count} committed in {duration_seconds:.2f}s"
        )
        return result

    def _close_after_failure(self) -> None:
        try:
            self.sink_function.close()
        except Exception as close_error:
            # The original failure is the one that propagates
            self.logger.warning(
                f"Closing sink after failure also failed: "
                f"{type(close_error).__name__}: {close_error}"
            )
