"""
Custom exceptions for the stream_sink framework.

Provides a hierarchy of exceptions with enough context (the record, the
command, the resource) to diagnose a failed write without re-running the job.
"""

from typing import Any, Optional


class StreamSinkError(Exception):
    """
    Base exception for all stream_sink errors.

    All custom exceptions in the framework inherit from this class,
    allowing callers to catch framework-specific errors in one place.

    Example:
        >>> try:
        ...     sink.invoke(record)
        ... except StreamSinkError as e:
        ...     print(f"Sink error: {e}")
    """

    pass


class ConfigurationError(StreamSinkError):
    """
    Raised when the sink is configured with invalid or missing values.

    Example:
        >>> raise ConfigurationError("batch.size must be >= 1, got 0")
    """

    pass


class SinkConnectionError(StreamSinkError):
    """
    Raised when the connection to the target store cannot be established.

    This is fatal to task startup: the host engine should fail the task
    rather than retry inside the sink.

    Attributes:
        target: Description of the store that was being reached (credentials masked)
        original_error: The underlying driver exception
    """

    def __init__(self, target: str, original_error: Exception):
        self.target = target
        self.original_error = original_error

        message = (
            f"Failed to connect to {target}: "
            f"{type(original_error).__name__}: {original_error}"
        )
        super().__init__(message)

    def __repr__(self) -> str:
        return (
            f"SinkConnectionError(target={self.target!r}, "
            f"original_error={self.original_error!r})"
        )


class TransformError(StreamSinkError):
    """
    Raised when a record cannot be converted into a write command.

    Records are never dropped silently: the error propagates to the host
    engine, which fails the task and recovers from the last checkpoint.

    Attributes:
        record: The input record that failed to transform
        original_error: The exception raised by the transform

    Example:
        >>> try:
        ...     command = transform(record)
        ... except KeyError as e:
        ...     raise TransformError(record=record, original_error=e)
    """

    def __init__(self, record: Any, original_error: Exception):
        self.record = record
        self.original_error = original_error

        message = (
            f"Failed to transform record {_preview(record)}: "
            f"{type(original_error).__name__}: {original_error}"
        )
        super().__init__(message)

    def __repr__(self) -> str:
        return (
            f"TransformError(record={self.record!r}, "
            f"original_error={self.original_error!r})"
        )


class CommitError(StreamSinkError):
    """
    Raised when an immediate write or a batch flush fails to execute or commit.

    The offending command is kept so it can be logged and inspected. For
    batched writes, `pending` is the number of commands still buffered when
    the failure happened (the buffer is not cleared on failure).

    Attributes:
        command: The command being executed when the failure happened (None
                 if the failure came from commit() itself)
        original_error: The underlying driver exception
        pending: Number of commands still buffered
    """

    def __init__(self, command: Any, original_error: Exception, pending: int = 0):
        self.command = command
        self.original_error = original_error
        self.pending = pending

        where = f"command {command}" if command is not None else "commit"
        message = (
            f"Failed to write {where}: "
            f"{type(original_error).__name__}: {original_error}"
        )
        if pending:
            message += f" ({pending} commands pending)"
        super().__init__(message)

    def __repr__(self) -> str:
        return (
            f"CommitError(command={self.command!r}, "
            f"original_error={self.original_error!r}, "
            f"pending={self.pending})"
        )


class ResourceCloseError(StreamSinkError):
    """
    Raised (and logged, never escalated) when releasing a resource fails.

    Attributes:
        resource: Which resource failed to close ("statement" or "connection")
        original_error: The underlying exception
    """

    def __init__(self, resource: str, original_error: Exception):
        self.resource = resource
        self.original_error = original_error

        message = (
            f"Failed to close {resource}: "
            f"{type(original_error).__name__}: {original_error}"
        )
        super().__init__(message)

    def __repr__(self) -> str:
        return (
            f"ResourceCloseError(resource={self.resource!r}, "
            f"original_error={self.original_error!r})"
        )


class IllegalStateError(StreamSinkError):
    """
    Raised when a lifecycle operation is called in the wrong state.

    Example:
        >>> sink.invoke(record)  # before open()
        Traceback (most recent call last):
        IllegalStateError: Cannot invoke() while sink is uninitialized
    """

    def __init__(self, operation: str, state: Optional[str], subject: str = "sink"):
        self.operation = operation
        self.state = state
        self.subject = subject
        super().__init__(f"Cannot {operation}() while {subject} is {state}")

    def __repr__(self) -> str:
        return (
            f"IllegalStateError(operation={self.operation!r}, "
            f"state={self.state!r}, subject={self.subject!r})"
        )


def _preview(record: Any, limit: int = 200) -> str:
    text = repr(record)
    if len(text) > limit:
        return text[:limit] + "..."
    return text
