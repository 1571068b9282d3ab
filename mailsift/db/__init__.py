"""Database layer package.

Public re-exports so callers can write::

    from mailsift.db import get_connection, init_db, SQLiteResultStore
"""

from mailsift.db.connection import get_connection
from mailsift.db.migrations import init_db
from mailsift.db.results import ResultStore, SQLiteResultStore, StoredResult

__all__ = ["get_connection", "init_db", "ResultStore", "SQLiteResultStore", "StoredResult"]
