"""
Abstract base class for store connectors.

A connector knows how to open a DB-API 2.0 style connection to one kind of
store. The sink only relies on the small subset below, so any driver that
offers it can be plugged in.
"""

from abc import ABC, abstractmethod
from typing import Any


class Connector(ABC):
    """
    Opens connections to a target store with auto-commit disabled.

    The returned connection must provide:
        - cursor() -> cursor with execute(sql, params), rowcount and close()
        - commit(), rollback(), close()

    Example:
        >>> class MyConnector(Connector):
        ...     def connect(self, connection_string: str):
        ...         conn = mydriver.connect(connection_string)
        ...         conn.autocommit = False
        ...         return conn
    """

    @abstractmethod
    def connect(self, connection_string: str) -> Any:
        """
        Open a new connection with auto-commit disabled.

        Args:
            connection_string: Driver-specific connection string

        Returns:
            A DB-API 2.0 style connection

        Raises:
            Exception: Driver-specific errors; the caller wraps them
                       in SinkConnectionError
        """
        pass
