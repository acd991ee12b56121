"""
SQLite-backed store for single-host runs and tests.
"""

import asyncio
import os
import sqlite3
import threading
from typing import Any, List, Sequence

from booktranslator.config import DATABASE_PATH
from booktranslator.core.exceptions import StoreQueryError
from booktranslator.persistence.store import QueryResult, Statement, Store


class LocalStore(Store):
    """
    Store over a local SQLite file.

    A single connection is shared behind an RLock; calls run in a worker
    thread so the event loop is never blocked. ``":memory:"`` gives a
    throwaway database.
    """

    def __init__(self, db_path: str = DATABASE_PATH):
        """
        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        self.db_path = db_path
        self._lock = threading.RLock()

        directory = os.path.dirname(db_path)
        if db_path != ':memory:' and directory:
            os.makedirs(directory, exist_ok=True)

        self._connection = sqlite3.connect(db_path, check_same_thread=False, timeout=30.0)
        self._connection.row_factory = sqlite3.Row

    def _execute(self, cursor: sqlite3.Cursor, sql: str, params: Sequence[Any]) -> QueryResult:
        try:
            cursor.execute(sql, tuple(params))
        except sqlite3.Error as e:
            raise StoreQueryError(str(e), sql=sql) from e
        rows = [dict(row) for row in cursor.fetchall()] if cursor.description else []
        return QueryResult(
            rows=rows,
            changes=max(cursor.rowcount, 0),
            last_row_id=cursor.lastrowid,
        )

    def _query_sync(self, sql: str, params: Sequence[Any]) -> QueryResult:
        with self._lock:
            cursor = self._connection.cursor()
            try:
                result = self._execute(cursor, sql, params)
                self._connection.commit()
                return result
            except StoreQueryError:
                self._connection.rollback()
                raise
            finally:
                cursor.close()

    def _batch_sync(self, statements: Sequence[Statement]) -> List[QueryResult]:
        # All statements commit together or not at all
        with self._lock:
            cursor = self._connection.cursor()
            try:
                results = [self._execute(cursor, sql, params) for sql, params in statements]
                self._connection.commit()
                return results
            except StoreQueryError:
                self._connection.rollback()
                raise
            finally:
                cursor.close()

    async def query(self, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        return await asyncio.to_thread(self._query_sync, sql, params)

    async def batch(self, statements: Sequence[Statement]) -> List[QueryResult]:
        if not statements:
            return []
        return await asyncio.to_thread(self._batch_sync, statements)

    async def close(self):
        with self._lock:
            self._connection.close()
