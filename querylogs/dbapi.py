"""
DB-API 2.0 connection wrapper that runs statements through a query
transformer chain before they reach the driver.

    import sqlite3
    conn = TransformingConnection(sqlite3.connect(":memory:"), database="main")
    get_query_logs().install(conn.transformers)
    conn.execute("SELECT 1")   # driver sees "SELECT 1 /*application:...*/"

Works with any driver exposing cursor()/execute() (sqlite3, duckdb, psycopg).
Everything not overridden is proxied to the wrapped object.
"""

import logging
from typing import Any, Iterable, Optional

from .transformers import QueryTransformers, get_query_transformers

log = logging.getLogger(__name__)


class TransformingCursor:
    """Cursor proxy applying the connection's transformer chain to statements."""

    def __init__(self, cursor: Any, connection: "TransformingConnection"):
        self._cursor = cursor
        self._connection = connection

    def _transform(self, sql: str) -> str:
        return self._connection.transformers.apply(sql, self._connection)

    def execute(self, sql: str, parameters: Any = None):
        sql = self._transform(sql)
        if parameters is None:
            self._cursor.execute(sql)
        else:
            self._cursor.execute(sql, parameters)
        return self

    def executemany(self, sql: str, seq_of_parameters: Iterable[Any]):
        self._cursor.executemany(self._transform(sql), seq_of_parameters)
        return self

    def executescript(self, sql_script: str):
        self._cursor.executescript(self._transform(sql_script))
        return self

    def __iter__(self):
        return iter(self._cursor)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._cursor, name)


class TransformingConnection:
    """
    Connection proxy whose cursors transform every statement.

    Args:
        connection: Wrapped DB-API connection
        transformers: Chain to apply (defaults to the process-wide chain)
        host: Reported by the "db_host" tagging
        database: Reported by the "database" tagging
    """

    def __init__(
        self,
        connection: Any,
        transformers: Optional[QueryTransformers] = None,
        host: Optional[str] = None,
        database: Optional[str] = None,
    ):
        self._connection = connection
        self.transformers = transformers if transformers is not None else get_query_transformers()
        self.host = host
        self.database = database

    @property
    def raw_connection(self) -> Any:
        return self._connection

    def cursor(self, *args: Any, **kwargs: Any) -> TransformingCursor:
        return TransformingCursor(self._connection.cursor(*args, **kwargs), self)

    def execute(self, sql: str, parameters: Any = None) -> TransformingCursor:
        """Shortcut: new cursor, execute, return the cursor."""
        return self.cursor().execute(sql, parameters)

    def executemany(self, sql: str, seq_of_parameters: Iterable[Any]) -> TransformingCursor:
        return self.cursor().executemany(sql, seq_of_parameters)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self._connection.commit()
        else:
            self._connection.rollback()
        return False

    def __getattr__(self, name: str) -> Any:
        return getattr(self._connection, name)

    def __repr__(self):
        return f"TransformingConnection({self._connection!r}, steps={len(self.transformers)})"
