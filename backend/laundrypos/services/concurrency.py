# Overview: Service-layer helpers for transactions, retries and row locking.

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


# Lock contention, stale rows and unique-index races (order code, customer
# phone) are worth another attempt; everything else propagates at once.
RETRYABLE_ERRORS = (OperationalError, StaleDataError, IntegrityError)


@contextmanager
def atomic():
    """
    Run a block as one unit of work on db.session.

    Commits when the block finishes; any exception rolls the whole unit
    back and is re-raised unchanged.
    """
    try:
        yield db.session
        db.session.commit()
    except BaseException:
        db.session.rollback()
        raise


def lock_for_update(query):
    # SELECT ... FOR UPDATE; a no-op on SQLite
    return query.with_for_update()


def run_with_retry(unit_of_work, *, attempts: int = 3, delay: float = 0.05):
    """
    Call unit_of_work until it succeeds or attempts run out.

    The unit must open its own atomic() block so a retry starts from a
    clean session. Waits delay, 2*delay, 4*delay... between attempts.
    """
    for attempt in range(1, attempts + 1):
        try:
            return unit_of_work()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt == attempts:
                raise
            current_app.logger.warning(
                "Retrying unit of work (attempt %s of %s) after %s", attempt + 1, attempts, type(exc).__name__,
            )
            time.sleep(delay * (2 ** (attempt - 1)))
