"""
ODBC connector built on pyodbc.

Used for SQL Server and any other store with an ODBC driver. Imported lazily
by the package so pyodbc is only required when this connector is used.
"""

from typing import Any

import pyodbc

from .base import Connector


class ODBCConnector(Connector):
    """
    Connector that opens pyodbc connections in manual-commit mode.

    Attributes:
        timeout: Login timeout in seconds (0 means the driver default)

    Example:
        >>> connector = ODBCConnector(timeout=15)
        >>> conn = connector.connect(
        ...     "Driver={ODBC Driver 18 for SQL Server};Server=...;Database=...;UID=...;PWD=..."
        ... )
    """

    def __init__(self, timeout: int = 0):
        self.timeout = timeout

    def connect(self, connection_string: str) -> Any:
        """
        Open a pyodbc connection with autocommit disabled.

        Raises:
            pyodbc.Error: If the server is unreachable or the login is rejected
        """
        return pyodbc.connect(connection_string, autocommit=False, timeout=self.timeout)
