"""
Store connectors.

Connectors open transactional connections to a target store.
"""

from stream_sink.connectors.base import Connector
from stream_sink.connectors.memory import InMemoryConnector, InMemoryConnection, InMemoryStoreError

# Lazy import for ODBC to avoid the pyodbc dependency when not needed
def __getattr__(name):
    if name == "ODBCConnector":
        from stream_sink.connectors.odbc import ODBCConnector
        return ODBCConnector
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

__all__ = [
    "Connector",
    "ODBCConnector",
    "InMemoryConnector",
    "InMemoryConnection",
    "InMemoryStoreError",
]
