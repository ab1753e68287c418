# Overview: Database concurrency helpers; retry policy, write locks, and identity-map hygiene.

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def begin_write_transaction() -> None:
    """
    Take the database write lock up front.

    SQLite defers the write lock until the first write, so two sales that both
    read before writing can deadlock. BEGIN IMMEDIATE serializes writers at the
    store level instead. Other dialects rely on the conditional UPDATEs alone.
    """
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.driver_connection
    if not raw.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def expire_cached(model, pk) -> None:
    """Expire a cached ORM instance after a Core-level UPDATE touched its row."""
    cached = db.session.identity_map.get(db.session.identity_key(model, pk))
    if cached is not None:
        db.session.expire(cached)


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Business errors propagate immediately.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_transaction covers it there.
    """
    return query.with_for_update()
