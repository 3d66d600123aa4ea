# Overview: Transaction helpers for operations that must serialise on a row.

from __future__ import annotations

from sqlalchemy import text

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Pair with begin_immediate() so SQLite still serialises writers.
    """
    return query.with_for_update()


def begin_immediate() -> None:
    """
    Take the SQLite write lock up front for the current transaction.

    No-op on other dialects, which rely on lock_for_update instead, and when
    the driver already holds an open write transaction.
    """
    if db.engine.dialect.name != "sqlite":
        return
    connection = db.session.connection()
    if connection.connection.dbapi_connection.in_transaction:
        return
    connection.execute(text("BEGIN IMMEDIATE"))
