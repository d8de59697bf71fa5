# Overview: Row locking and retry helpers for read-then-write sequences (stock decrement on approval).

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE for rows about to be decremented.

    NOTE: SQLite ignores FOR UPDATE; the version_id columns still turn a lost
    update into StaleDataError there.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run a unit of DB work, retrying on lock contention and stale versions.

    The session is rolled back before every retry, so func must re-read
    whatever it writes.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying after %s (attempt %d of %d)", type(exc).__name__, attempt + 1, attempts
            )
            time.sleep(backoff_base * (2 ** attempt))
