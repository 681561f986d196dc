"""Batch-job adapter exposing a sink function through the output-format lifecycle."""

from typing import Any, Generic, Optional, TypeVar

from .sink import TransactionalSinkFunction


T = TypeVar("T")


class SinkOutputFormat(Generic[T]):
    """
    Drives a TransactionalSinkFunction from a bounded (batch) job.

    configure() -> open(task_number, num_tasks) -> write_record()* -> close()

    Example:
        >>> output = SinkOutputFormat(TransactionalSink(params).build(transform))
        >>> output.configure({})
        >>> output.open(task_number=0, num_tasks=1)
        >>> for row in rows:
        ...     output.write_record(row)
        >>> output.close()
    """

    def __init__(self, sink_function: TransactionalSinkFunction[T]):
        self.sink_function = sink_function
        self.parameters: Optional[dict[str, Any]] = None

    def configure(self, parameters: Optional[dict[str, Any]]) -> None:
        self.parameters = parameters

    def open(self, task_number: int, num_tasks: int) -> None:
        task_config = dict(self.parameters or {})
        task_config.update({"task_number": task_number, "num_tasks": num_tasks})
        self.sink_function.open(task_config)

    def write_record(self, record: T) -> None:
        self.sink_function.invoke(record, None)

    def close(self) -> None:
        self.sink_function.close()
