"""
Write commands and the record transform contract.

A record transform turns one input record into one WriteCommand. It is the
only per-type extension point of the sink and is supplied by the pipeline author.
"""

from dataclasses import dataclass
from typing import Any, Callable, TypeVar, Union

from .exceptions import TransformError


T = TypeVar("T")


@dataclass(frozen=True)
class WriteCommand:
    """
    One unit of work against the target store.

    Immutable once produced. `params` are bound to the `?` placeholders of
    `sql` by the driver, so values never need to be quoted into the text.

    Example:
        >>> cmd = WriteCommand("INSERT INTO dbo.clicks (id, url) VALUES (?, ?)", (1, "/home"))
        >>> cmd.params
        (1, '/home')
    """

    sql: str
    params: tuple = ()

    def __post_init__(self):
        if not isinstance(self.sql, str) or not self.sql.strip():
            raise ValueError("WriteCommand.sql must be a non-empty string")
        # Lists are accepted for convenience but stored as a tuple
        if not isinstance(self.params, tuple):
            object.__setattr__(self, "params", tuple(self.params))

    @classmethod
    def coerce(cls, value: Any) -> "WriteCommand":
        """
        Normalize a transform result into a WriteCommand.

        Accepts a WriteCommand, a plain SQL string, or an (sql, params) pair.

        Raises:
            TypeError: If the value has none of the accepted shapes
            ValueError: If the SQL text is empty
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            return cls(value)
        if isinstance(value, tuple) and len(value) == 2 and isinstance(value[0], str):
            return cls(value[0], tuple(value[1]))
        raise TypeError(
            f"Record transform must return a WriteCommand, a SQL string or an "
            f"(sql, params) pair, got {type(value).__name__}"
        )

    def __str__(self) -> str:
        if self.params:
            return f"{self.sql} -- params={self.params!r}"
        return self.sql


RecordTransform = Callable[[T], Union[WriteCommand, str, tuple]]


def apply_transform(transform: RecordTransform, record: T) -> WriteCommand:
    """
    Run the record transform and coerce its result.

    Raises:
        TransformError: If the transform raises or returns an unusable value
    """
    try:
        return WriteCommand.coerce(transform(record))
    except Exception as e:
        raise TransformError(record=record, original_error=e) from e
