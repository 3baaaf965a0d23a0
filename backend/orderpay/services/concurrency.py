# Overview: Service-layer helpers for concurrency; guarded updates and retried units of work.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def apply_guarded_update(stmt) -> int:
    """
    Execute a single UPDATE whose WHERE clause carries its own precondition.

    Returns the affected row count. 0 means the precondition did not hold
    (or the row does not exist); the caller decides which.

    NOTE: The check and the write happen in one statement, so two requests
    racing on the same row cannot both pass the check. Never replace this
    with a read followed by a write from Python.
    """
    result = db.session.execute(stmt.execution_options(synchronize_session=False))
    return result.rowcount


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute one unit of work with retry on transient storage failures.

    Retries on OperationalError (locked database, dropped connection) and
    StaleDataError. The session is rolled back before each retry, so a
    retried unit never double-applies a statement.
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
