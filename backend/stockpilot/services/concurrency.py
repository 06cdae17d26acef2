# Overview: Row locking and retry helpers shared by every stock-changing operation.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for read-modify-write on stock counters.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; the version_id column on
    the locked rows still rejects a concurrent overwrite there.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a unit of work, retrying it on concurrency failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). The session is rolled back before each
    retry so func() starts from fresh rows.
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
            current_app.logger.warning(
                "Concurrent write conflict (attempt %s/%s): %s", attempt + 1, attempts, exc
            )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def run_atomic(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run func() and commit its changes as one transaction.

    Any failure (business rule or database) rolls the whole unit back, so a
    stock counter is never written without its movement row. Concurrency
    failures are retried via run_with_retry.
    """
    def _op():
        try:
            result = func()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return result

    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
