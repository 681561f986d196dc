"""
stream_sink - Buffered transactional write sink for streaming pipelines.

Turns each record of a stream into a write command and commits the commands
to a transactional store, one by one or in batches flushed on size or time,
alongside the host engine's checkpoints.
"""

__version__ = "0.1.0"

# Core components
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
from stream_sink.core.commands import WriteCommand
from stream_sink.core.sink import TransactionalSinkFunction
from stream_sink.core.builder import TransactionalSink
from stream_sink.core.output_format import SinkOutputFormat

# Transforms
from stream_sink.transforms import InsertTransform, MergeTransform, SQLTemplateTransform

# Connectors
from stream_sink.connectors.memory import InMemoryConnector

# Local driving
from stream_sink.engine import LocalEnvironment, SinkContext
from stream_sink.runner import LocalRunner, RunResult

# Lazy import for the ODBC connector to avoid the pyodbc dependency
def __getattr__(name):
    if name == "ODBCConnector":
        from stream_sink.connectors.odbc import ODBCConnector
        return ODBCConnector
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

__all__ = [
    # Version
    "__version__",
    # Core
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
    "TransactionalSinkFunction",
    "TransactionalSink",
    "SinkOutputFormat",
    # Transforms
    "InsertTransform",
    "MergeTransform",
    "SQLTemplateTransform",
    # Connectors
    "ODBCConnector",
    "InMemoryConnector",
    # Local driving
    "LocalEnvironment",
    "SinkContext",
    "LocalRunner",
    "RunResult",
]
