"""
Ready-made record transforms.

Each transform is a callable turning one record into a WriteCommand, built
from a column map: a dictionary of column name -> extractor function pulling
the value out of the record.
"""

from typing import Any, Callable, Generic, Mapping, TypeVar

from .core.commands import WriteCommand
from .core.exceptions import ConfigurationError


T = TypeVar("T")

ColumnMap = dict[str, Callable[[T], Any]]


class _ColumnMapTransform(Generic[T]):
    def __init__(self, target_table: str, column_map: ColumnMap):
        if not target_table:
            raise ConfigurationError("target_table cannot be empty")
        if not column_map:
            raise ConfigurationError("column_map cannot be empty. Provide at least one column.")
        self.target_table = target_table
        self.column_map = column_map
        self.columns = list(column_map.keys())
        self.sql = ""

    def __call__(self, record: T) -> WriteCommand:
        return WriteCommand(self.sql, self._apply_column_map(record))

    def _column_list(self) -> str:
        return ", ".join(self.columns)

    def _placeholders(self) -> str:
        return ", ".join("?" for _ in self.columns)

    def _apply_column_map(self, record: T) -> tuple:
        """
        Extract the values for every column, in column_map order.

        Raises:
            ValueError: If an extractor fails (wrapped in TransformError by the sink)
        """
        values = []
        for column_name, extractor in self.column_map.items():
            try:
                values.append(extractor(record))
            except Exception as e:
                raise ValueError(
                    f"Column '{column_name}' extractor failed: {type(e).__name__}: {e}"
                ) from e
        return tuple(values)


class InsertTransform(_ColumnMapTransform[T]):
    """
    Plain INSERT of one row per record.

    Example:
        >>> transform = InsertTransform(
        ...     "dbo.page_views",
        ...     {"session_id": lambda r: r["session"], "url": lambda r: r["url"]},
        ... )
        >>> transform({"session": "s1", "url": "/home"})
        WriteCommand(sql='INSERT INTO dbo.page_views (session_id, url) VALUES (?, ?)', params=('s1', '/home'))
    """

    def __init__(self, target_table: str, column_map: ColumnMap):
        super().__init__(target_table, column_map)
        self.sql = (
            f"INSERT INTO {self.target_table} ({self._column_list()}) "
            f"VALUES ({self._placeholders()})"
        )


class MergeTransform(_ColumnMapTransform[T]):
    """
    T-SQL MERGE (upsert) of one row per record.

    Updates the row matching merge_keys, or inserts it when there is none.
    Upserts make replays after a restart from checkpoint idempotent.

    Example:
        >>> transform = MergeTransform(
        ...     target_table="dbo.sessions",
        ...     merge_keys=["session_id"],
        ...     column_map={
        ...         "session_id": lambda r: r["session"],
        ...         "page_count": lambda r: r["pages"],
        ...     },
        ... )

    Generated MERGE SQL:
        ```sql
        MERGE dbo.sessions AS target
        USING (SELECT ?, ?) AS source (session_id, page_count)
        ON target.session_id = source.session_id
        WHEN MATCHED THEN UPDATE SET page_count = source.page_count
        WHEN NOT MATCHED THEN INSERT (session_id, page_count) VALUES (source.session_id, source.page_count);
        ```
    """

    def __init__(self, target_table: str, merge_keys: list[str], column_map: ColumnMap):
        """
        Raises:
            ConfigurationError: If merge_keys is empty or contains columns not in column_map
        """
        super().__init__(target_table, column_map)

        if not merge_keys:
            raise ConfigurationError("merge_keys cannot be empty. Provide at least one key column.")
        for key in merge_keys:
            if key not in column_map:
                raise ConfigurationError(
                    f"Merge key '{key}' not found in column_map. "
                    f"All merge keys must have extractors in column_map."
                )

        self.merge_keys = merge_keys
        self.sql = self._merge_sql()

    def _merge_sql(self) -> str:
        clauses = [
            f"MERGE {self.target_table} AS target",
            f"USING (SELECT {self._placeholders()}) AS source ({self._column_list()})",
            "ON " + " AND ".join(f"target.{key} = source.{key}" for key in self.merge_keys),
        ]

        updates = [f"{col} = source.{col}" for col in self.columns if col not in self.merge_keys]
        if updates:
            clauses.append("WHEN MATCHED THEN UPDATE SET " + ", ".join(updates))

        source_values = ", ".join(f"source.{col}" for col in self.columns)
        clauses.append(
            f"WHEN NOT MATCHED THEN INSERT ({self._column_list()}) VALUES ({source_values});"
        )
        return "\n".join(clauses)


class SQLTemplateTransform:
    """
    Renders a SQL template with the fields of a mapping-like record.

    The values are formatted into the SQL text, so only use this with trusted
    data; prefer InsertTransform or MergeTransform, which bind parameters.

    Example:
        >>> transform = SQLTemplateTransform(
        ...     "UPDATE dbo.counters SET hits = hits + {n} WHERE page = '{page}'"
        ... )
        >>> transform({"n": 3, "page": "home"}).sql
        "UPDATE dbo.counters SET hits = hits + 3 WHERE page = 'home'"
    """

    def __init__(self, template: str):
        if not template or not template.strip():
            raise ConfigurationError("SQL template cannot be empty")
        self.template = template

    def __call__(self, record: Mapping[str, Any]) -> WriteCommand:
        return WriteCommand(self.template.format(**record))
