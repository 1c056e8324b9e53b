# Overview: Transaction boundary and row-locking helpers shared by every mutating service.

from __future__ import annotations

from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_atomically(func):
    """
    Execute a unit of work as one transaction.

    Commits once when func returns; on any exception rolls back and
    re-raises, so callers never observe a half-applied operation.
    Optimistic-lock failures (version_id mismatch) surface as
    ConflictError. Nothing is retried.
    """
    try:
        result = func()
        db.session.commit()
        return result
    except StaleDataError as exc:
        db.session.rollback()
        raise ConflictError("Record was modified concurrently, reload and try again") from exc
    except Exception:
        db.session.rollback()
        raise
