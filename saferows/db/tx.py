from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.sql.elements import TextClause

logger = logging.getLogger(__name__)


class BatchTransaction:
    """
    Transaction scope for one batch of statements on a borrowed connection.

    With ``transactional=True`` the scope begins a transaction on entry, or a
    SAVEPOINT if the caller already has one open on the connection, and must be
    explicitly committed. Leaving the block without ``commit()`` rolls back.

    With ``transactional=False`` every statement is committed as soon as it
    runs, unless the caller owns an outer transaction, in which case the
    statements simply join it.

    The connection itself is never closed here; it belongs to the caller.

    Usage:
        with engine.connect() as conn:
            with BatchTransaction(conn) as tx:
                tx.execute("UPDATE t SET a = :a WHERE id = :id", {"a": 1, "id": 2})
                tx.commit()
    """

    def __init__(self, conn: Connection, transactional: bool = True) -> None:
        self.conn = conn
        self.transactional = transactional
        self._tx = None
        self._outer = False
        self._active = False
        self._closed = False

    def __enter__(self) -> "BatchTransaction":
        if self._active or self._closed:
            raise RuntimeError("BatchTransaction cannot be entered twice")
        self._outer = self.conn.in_transaction()
        if self.transactional:
            self._tx = self.conn.begin_nested() if self._outer else self.conn.begin()
        self._active = True
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._active and not self.closed:
            try:
                self.rollback()
            except Exception:
                if exc_type is None:
                    raise
                # Keep the original error; the rollback failure is secondary.
                logger.exception("Rollback failed while handling %s", exc_type.__name__)
        return False

    @property
    def nested(self) -> bool:
        """True when running inside a transaction the caller already opened."""
        return self._outer

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("Transaction is already closed")
        if not self._active:
            raise RuntimeError("BatchTransaction is not active; use within a context manager")

    def execute(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> int:
        """
        Execute a non-SELECT statement and return the affected row count.
        """
        self._check_open()
        stmt = text(sql) if isinstance(sql, str) else sql
        result = self.conn.execute(stmt, params or {})
        try:
            if result.rowcount is None:
                raise RuntimeError(
                    "execute() received None rowcount for statement. "
                    "This may indicate a DDL statement or unsupported operation type."
                )
            rowcount = int(result.rowcount)
        finally:
            result.close()

        if not self.transactional and not self._outer:
            self.conn.commit()
        return rowcount

    def commit(self) -> None:
        self._check_open()
        try:
            if self._tx is not None:
                self._tx.commit()
            elif not self._outer and self.conn.in_transaction():
                self.conn.commit()
        finally:
            self._closed = True
            self._tx = None

    def rollback(self) -> None:
        """
        Undo everything done in this scope.

        In non-transactional mode only a statement that has not been committed
        yet can be undone.
        """
        self._check_open()
        try:
            if self._tx is not None:
                if self._tx.is_active:
                    self._tx.rollback()
            elif not self._outer and self.conn.in_transaction():
                self.conn.rollback()
        finally:
            self._closed = True
            self._tx = None
