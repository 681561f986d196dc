"""
Sink builder: resolves configuration and wires sink functions into a stream.
"""

import logging
from typing import Any, Mapping, Optional

from ..connectors.base import Connector
from ..engine import DataStream, DataStreamSink
from .commands import RecordTransform
from .config import CheckpointConfig, SinkConfig, resolve_sink_config
from .sink import TransactionalSinkFunction


logger = logging.getLogger("stream_sink.builder")


class TransactionalSink:
    """
    Builds TransactionalSinkFunction instances from job parameters.

    Construction has no side effects on the engine. The checkpoint settings
    the sink relies on are exposed as `checkpoint_config` and the caller
    applies them once:

    Example:
        >>> sink = TransactionalSink(
        ...     param_map={"jdbc.connection.string": conn_str, "jdbc.batch.size": "500"},
        ...     overwrite_params={"flush.interval.ms": "2000"},
        ...     parallelism=4,
        ...     name="clicks-sink",
        ... )
        >>> sink.checkpoint_config.apply_to(env)
        >>> sink.sink(stream, InsertTransform("dbo.clicks", column_map))

    Attributes:
        config: Resolved SinkConfig shared by every function this builder creates
        checkpoint_config: Checkpoint settings to apply to the engine
        parallelism: Sink parallelism (0 leaves the engine default)
        name: Operator name shown by the engine
        uid: Stable operator id used to match state across restarts
    """

    def __init__(
        self,
        param_map: Optional[Mapping[str, Any]] = None,
        overwrite_params: Optional[Mapping[str, Any]] = None,
        parallelism: int = 0,
        name: Optional[str] = None,
        uid: Optional[str] = None,
        instance: str = "",
        checkpoint: Optional[CheckpointConfig] = None,
        connector: Optional[Connector] = None,
    ):
        """
        Initialize the builder.

        Args:
            param_map: Flat job parameters ("jdbc.*" keys)
            overwrite_params: Per-sink overrides merged over param_map
            parallelism: Sink parallelism, 0 for the engine default
            name: Operator name
            uid: Operator uid
            instance: Named store instance ("jdbc.<instance>.*" keys)
            checkpoint: Checkpoint settings (defaults to CheckpointConfig())
            connector: Store connector for created functions (defaults to ODBC)

        Raises:
            ConfigurationError: If the parameters do not form a valid configuration
        """
        if parallelism < 0:
            raise ValueError(f"parallelism must be >= 0, got {parallelism}")

        self.config: SinkConfig = resolve_sink_config(param_map, instance, overwrite_params)
        self.checkpoint_config = checkpoint or CheckpointConfig()
        self.parallelism = parallelism
        self.name = name
        self.uid = uid
        self.instance = instance
        self.connector = connector

    def build(self, transform: RecordTransform) -> TransactionalSinkFunction:
        """Create a sink function for one parallel task."""
        return TransactionalSinkFunction(
            self.config,
            transform,
            connector=self.connector,
            name=self.name or self.instance or "sink",
        )

    def sink(self, stream: DataStream, transform: RecordTransform) -> DataStreamSink:
        """
        Attach a new sink function to a stream and apply operator settings.

        Returns:
            The engine's sink handle
        """
        handle = stream.add_sink(self.build(transform))
        if self.parallelism > 0:
            handle.set_parallelism(self.parallelism)
        if self.name:
            handle.name(self.name)
        if self.uid:
            handle.uid(self.uid)
        logger.info(
            f"Attached sink '{self.name or 'sink'}' "
            f"(parallelism={self.parallelism or 'default'}, "
            f"batch_size={self.config.flush.batch_size})"
        )
        return handle
