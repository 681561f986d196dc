"""
Core components of the sink.

Includes configuration, write commands, the connection resource, batch
buffering and flush coordination, and the sink function itself.
"""

from stream_sink.core.config import (
    CheckpointConfig,
    CheckpointingMode,
    ConnectionParams,
    ExternalizedCheckpointCleanup,
    FlushPolicy,
    SinkConfig,
    resolve_sink_config,
)
from stream_sink.core.exceptions import (
    StreamSinkError,
    ConfigurationError,
    SinkConnectionError,
    TransformError,
    CommitError,
    ResourceCloseError,
    IllegalStateError,
)
from stream_sink.core.commands import WriteCommand, RecordTransform, apply_transform
from stream_sink.core.buffer import BatchBuffer
from stream_sink.core.connection import ConnectionResource, ConnectionState
from stream_sink.core.flush import FlushCoordinator, FlushTimer
from stream_sink.core.sink import SinkState, TransactionalSinkFunction
from stream_sink.core.builder import TransactionalSink
from stream_sink.core.output_format import SinkOutputFormat

__all__ = [
    "CheckpointConfig",
    "CheckpointingMode",
    "ConnectionParams",
    "ExternalizedCheckpointCleanup",
    "FlushPolicy",
    "SinkConfig",
    "resolve_sink_config",
    "StreamSinkError",
    "ConfigurationError",
    "SinkConnectionError",
    "TransformError",
    "CommitError",
    "ResourceCloseError",
    "IllegalStateError",
    "WriteCommand",
    "RecordTransform",
    "apply_transform",
    "BatchBuffer",
    "ConnectionResource",
    "ConnectionState",
    "FlushCoordinator",
    "FlushTimer",
    "SinkState",
    "TransactionalSinkFunction",
    "TransactionalSink",
    "SinkOutputFormat",
]
