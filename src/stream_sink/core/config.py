"""
Configuration models for the sink.

Flush policy, connection parameters and the checkpoint settings requested
from the host engine. All models are Pydantic so that invalid values are
rejected at construction rather than on the first record.
"""

import os
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import ConfigurationError


# Parameter map conventions (flat "jdbc.*" keys, as passed by the engine)
PARAM_PREFIX = "jdbc."
KEY_BATCH_SIZE = "batch.size"
KEY_FLUSH_INTERVAL = "flush.interval.ms"
KEY_CONNECTION_STRING = "connection.string"
ODBC_ATTRIBUTE_PREFIX = "odbc."

DEFAULT_BATCH_SIZE = 1
DEFAULT_FLUSH_INTERVAL_MILLIS = 1000

CONNECTION_ENV_VAR = "STREAM_SINK_CONN"

# Aliases accepted in parameter maps -> ConnectionParams field names
_CONNECTION_KEYS = {
    "driver": "driver",
    "server": "server",
    "database": "database",
    "user": "uid",
    "uid": "uid",
    "password": "pwd",
    "pwd": "pwd",
}


class FlushPolicy(BaseModel):
    """
    When buffered commands are committed.

    Attributes:
        batch_size: Commit once this many commands are pending. 1 means every
                    record is committed synchronously and nothing is buffered.
        flush_interval_millis: Upper bound on how long a buffered command may
                               wait before the time trigger commits it.

    Example:
        >>> policy = FlushPolicy(batch_size=500, flush_interval_millis=1000)
        >>> policy.immediate
        False
    """

    batch_size: int = Field(DEFAULT_BATCH_SIZE, ge=1, description="Count trigger")
    flush_interval_millis: int = Field(
        DEFAULT_FLUSH_INTERVAL_MILLIS, gt=0, description="Time trigger in milliseconds"
    )

    model_config = {"frozen": True}

    @property
    def immediate(self) -> bool:
        return self.batch_size == 1

    @property
    def flush_interval_seconds(self) -> float:
        return self.flush_interval_millis / 1000.0


class CheckpointingMode(str, Enum):
    EXACTLY_ONCE = "exactly_once"
    AT_LEAST_ONCE = "at_least_once"


class ExternalizedCheckpointCleanup(str, Enum):
    RETAIN_ON_CANCELLATION = "retain_on_cancellation"
    DELETE_ON_CANCELLATION = "delete_on_cancellation"


class CheckpointConfig(BaseModel):
    """
    Checkpoint settings the sink asks the host engine to use.

    The sink never applies these itself. The object is returned from the sink
    builder and the caller applies it once with apply_to(), so constructing a
    sink has no side effects on shared engine state.

    Defaults: checkpoint every 10s in exactly-once mode, at least 1s between
    checkpoints, 10s timeout, one checkpoint at a time, and checkpoint data
    retained when the job is cancelled.
    """

    interval_millis: int = Field(10_000, gt=0)
    mode: CheckpointingMode = CheckpointingMode.EXACTLY_ONCE
    min_pause_between_checkpoints_millis: int = Field(1_000, ge=0)
    timeout_millis: int = Field(10_000, gt=0)
    max_concurrent_checkpoints: int = Field(1, ge=1, le=1)
    externalized_cleanup: ExternalizedCheckpointCleanup = (
        ExternalizedCheckpointCleanup.RETAIN_ON_CANCELLATION
    )

    model_config = {"frozen": True}

    def apply_to(self, env: Any) -> None:
        """
        Push these settings onto a host engine environment.

        Args:
            env: Object implementing CheckpointableEnvironment
                 (see stream_sink.engine)
        """
        env.enable_checkpointing(self.interval_millis, self.mode)
        checkpoint_config = env.checkpoint_config
        checkpoint_config.min_pause_between_checkpoints = self.min_pause_between_checkpoints_millis
        checkpoint_config.checkpoint_timeout = self.timeout_millis
        checkpoint_config.max_concurrent_checkpoints = self.max_concurrent_checkpoints
        checkpoint_config.externalized_cleanup = self.externalized_cleanup


class ConnectionParams(BaseModel):
    """
    Where the sink writes to.

    Either a complete ODBC connection string, or its parts. When neither is
    given the STREAM_SINK_CONN environment variable is used.

    Example:
        >>> params = ConnectionParams(
        ...     driver="{ODBC Driver 18 for SQL Server}",
        ...     server="db.internal,1433",
        ...     database="analytics",
        ...     uid="etl",
        ...     pwd="secret",
        ... )
        >>> params.to_connection_string()
        'DRIVER={ODBC Driver 18 for SQL Server};SERVER=db.internal,1433;DATABASE=analytics;UID=etl;PWD=secret'
    """

    connection_string: Optional[str] = None
    driver: Optional[str] = None
    server: Optional[str] = None
    database: Optional[str] = None
    uid: Optional[str] = None
    pwd: Optional[str] = None
    attributes: dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @field_validator("attributes")
    @classmethod
    def _attribute_names_are_plain(cls, value: dict[str, str]) -> dict[str, str]:
        for key in value:
            if not key or any(ch in key for ch in ";="):
                raise ValueError(f"Invalid ODBC attribute name: {key!r}")
        return value

    def _parts(self) -> list[tuple[str, str]]:
        parts = [
            ("DRIVER", self.driver),
            ("SERVER", self.server),
            ("DATABASE", self.database),
            ("UID", self.uid),
            ("PWD", self.pwd),
        ]
        result = [(k, v) for k, v in parts if v is not None]
        result.extend((k.upper(), v) for k, v in self.attributes.items())
        return result

    def to_connection_string(self) -> str:
        """
        Build the ODBC connection string.

        Raises:
            ConfigurationError: If no connection target is configured at all
        """
        if self.connection_string:
            return self.connection_string

        parts = self._parts()
        if parts:
            return ";".join(f"{key}={value}" for key, value in parts)

        from_env = os.getenv(CONNECTION_ENV_VAR)
        if from_env:
            return from_env

        raise ConfigurationError(
            "No connection target provided. Either pass connection parameters "
            f"or set the {CONNECTION_ENV_VAR} environment variable."
        )

    def describe(self) -> str:
        """Short, credential-free description for log lines and errors."""
        if self.server or self.database:
            return f"{self.server or '?'}/{self.database or '?'}"
        if self.connection_string:
            return _mask_connection_string(self.connection_string)
        return f"${CONNECTION_ENV_VAR}"


class SinkConfig(BaseModel):
    """Everything a sink instance needs: where to write and when to commit."""

    connection: ConnectionParams = Field(default_factory=ConnectionParams)
    flush: FlushPolicy = Field(default_factory=FlushPolicy)

    model_config = {"frozen": True}


def resolve_sink_config(
    param_map: Optional[Mapping[str, Any]] = None,
    instance: str = "",
    overwrite_params: Optional[Mapping[str, Any]] = None,
) -> SinkConfig:
    """
    Build a SinkConfig from a flat engine parameter map.

    Keys under "jdbc." are defaults, keys under "jdbc.<instance>." override
    them for one named store, and overwrite_params (bare keys, no prefix) are
    merged last.

    Args:
        param_map: Flat job parameters, e.g. {"jdbc.server": "db", "jdbc.batch.size": "100"}
        instance: Name of the store instance when a job writes to several stores
        overwrite_params: Per-sink overrides merged over everything else

    Returns:
        Validated SinkConfig

    Raises:
        ConfigurationError: If an override key is unknown or a value is invalid

    Example:
        >>> config = resolve_sink_config(
        ...     {"jdbc.server": "db1", "jdbc.reporting.server": "db2", "jdbc.batch.size": "50"},
        ...     instance="reporting",
        ... )
        >>> config.connection.server, config.flush.batch_size
        ('db2', 50)
    """
    options: dict[str, Any] = {}
    param_map = param_map or {}

    for key, value in param_map.items():
        if key.startswith(PARAM_PREFIX) and _is_known_option(key[len(PARAM_PREFIX):]):
            options[key[len(PARAM_PREFIX):]] = value

    if instance:
        instance_prefix = f"{PARAM_PREFIX}{instance}."
        for key, value in param_map.items():
            if key.startswith(instance_prefix) and _is_known_option(key[len(instance_prefix):]):
                options[key[len(instance_prefix):]] = value

    for key, value in (overwrite_params or {}).items():
        if not _is_known_option(key):
            raise ConfigurationError(
                f"Unrecognized sink option {key!r}. Known options: "
                f"{', '.join(sorted(_known_options()))}, or '{ODBC_ATTRIBUTE_PREFIX}<name>'"
            )
        options[key] = value

    connection: dict[str, Any] = {}
    attributes: dict[str, str] = {}
    for key, value in options.items():
        if key == KEY_CONNECTION_STRING:
            connection["connection_string"] = str(value)
        elif key in _CONNECTION_KEYS:
            connection[_CONNECTION_KEYS[key]] = str(value)
        elif key.startswith(ODBC_ATTRIBUTE_PREFIX):
            attributes[key[len(ODBC_ATTRIBUTE_PREFIX):]] = str(value)

    try:
        return SinkConfig(
            connection=ConnectionParams(**connection, attributes=attributes),
            flush=FlushPolicy(
                batch_size=options.get(KEY_BATCH_SIZE, DEFAULT_BATCH_SIZE),
                flush_interval_millis=options.get(
                    KEY_FLUSH_INTERVAL, DEFAULT_FLUSH_INTERVAL_MILLIS
                ),
            ),
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid sink configuration: {e}") from e


def _known_options() -> set[str]:
    return {KEY_BATCH_SIZE, KEY_FLUSH_INTERVAL, KEY_CONNECTION_STRING, *_CONNECTION_KEYS}


def _is_known_option(key: str) -> bool:
    return key in _known_options() or (
        key.startswith(ODBC_ATTRIBUTE_PREFIX) and len(key) > len(ODBC_ATTRIBUTE_PREFIX)
    )


def _mask_connection_string(connection_string: str) -> str:
    masked = []
    for part in connection_string.split(";"):
        key, sep, _ = part.partition("=")
        if sep and key.strip().upper() in ("PWD", "PASSWORD"):
            masked.append(f"{key}=***")
        elif part:
            masked.append(part)
    return ";".join(masked)
