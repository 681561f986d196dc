"""
Host engine interface boundary.

The streaming engine (scheduling, checkpoint barriers, task lifecycle) is
not part of this package. This module only defines what the sink expects
from it and what it offers to it, plus small in-process stand-ins used by
the local runner and the tests.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Generic, Iterable, Optional, Protocol, TypeVar

from .core.config import CheckpointingMode, ExternalizedCheckpointCleanup


T = TypeVar("T")


@dataclass
class SinkContext:
    """Per-record context the engine may pass to invoke()."""

    timestamp: Optional[int] = None
    watermark: Optional[int] = None


class SinkFunction(ABC, Generic[T]):
    """
    Lifecycle the host engine drives on every parallel sink instance.

    open() once, invoke() once per record on the task thread, close() once.
    """

    @abstractmethod
    def open(self, task_config: Optional[dict[str, Any]] = None) -> None:
        pass

    @abstractmethod
    def invoke(self, record: T, context: Optional[SinkContext] = None) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


class CheckpointSettings(Protocol):
    min_pause_between_checkpoints: int
    checkpoint_timeout: int
    max_concurrent_checkpoints: int
    externalized_cleanup: ExternalizedCheckpointCleanup


class CheckpointableEnvironment(Protocol):
    """What CheckpointConfig.apply_to() needs from the engine environment."""

    checkpoint_config: CheckpointSettings

    def enable_checkpointing(self, interval_millis: int, mode: CheckpointingMode) -> Any:
        ...


class DataStreamSink(Protocol):
    """Handle returned when a sink is attached to a stream."""

    def set_parallelism(self, parallelism: int) -> Any:
        ...

    def name(self, name: str) -> Any:
        ...

    def uid(self, uid: str) -> Any:
        ...


class DataStream(Protocol):
    def add_sink(self, sink_function: SinkFunction) -> DataStreamSink:
        ...


@dataclass
class LocalCheckpointSettings:
    min_pause_between_checkpoints: int = 0
    checkpoint_timeout: int = 600_000
    max_concurrent_checkpoints: int = 1
    externalized_cleanup: Optional[ExternalizedCheckpointCleanup] = None


@dataclass
class LocalEnvironment:
    """
    In-process CheckpointableEnvironment that only records what was applied.

    Example:
        >>> env = LocalEnvironment()
        >>> CheckpointConfig().apply_to(env)
        >>> env.checkpoint_interval, env.checkpoint_config.max_concurrent_checkpoints
        (10000, 1)
    """

    checkpoint_config: LocalCheckpointSettings = field(default_factory=LocalCheckpointSettings)
    checkpoint_interval: Optional[int] = None
    checkpointing_mode: Optional[CheckpointingMode] = None

    def enable_checkpointing(self, interval_millis: int, mode: CheckpointingMode) -> "LocalEnvironment":
        self.checkpoint_interval = interval_millis
        self.checkpointing_mode = mode
        return self

    @property
    def checkpointing_enabled(self) -> bool:
        return self.checkpoint_interval is not None


@dataclass
class LocalDataStreamSink:
    function: SinkFunction
    parallelism: Optional[int] = None
    sink_name: Optional[str] = None
    sink_uid: Optional[str] = None

    def set_parallelism(self, parallelism: int) -> "LocalDataStreamSink":
        self.parallelism = parallelism
        return self

    def name(self, name: str) -> "LocalDataStreamSink":
        self.sink_name = name
        return self

    def uid(self, uid: str) -> "LocalDataStreamSink":
        self.sink_uid = uid
        return self


class LocalDataStream(Generic[T]):
    """A finite in-memory stream that records the sinks attached to it."""

    def __init__(self, records: Iterable[T]):
        self.records = records
        self.sinks: list[LocalDataStreamSink] = []

    def add_sink(self, sink_function: SinkFunction) -> LocalDataStreamSink:
        handle = LocalDataStreamSink(function=sink_function)
        self.sinks.append(handle)
        return handle
