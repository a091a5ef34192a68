# Overview: Row locking and bounded retry helpers shared by the service layer.

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Shift and product rows also carry a version_id column, so a concurrent
    writer that slips past the lock fails with StaleDataError instead of
    overwriting totals.
    """
    return query.with_for_update()


def backoff_delay(attempt: int, backoff_base: float) -> float:
    return backoff_base * (2 ** attempt)


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run one unit of work (shift open/close, sale row, void), retrying when
    another writer holds the row lock or bumped its version_id.

    Service errors (validation, not found) pass straight through.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt == attempts - 1:
                raise
            logger.info("Write conflict, retrying (attempt %s of %s): %s", attempt + 1, attempts, exc)
            time.sleep(backoff_delay(attempt, backoff_base))


# Fixed pool; shifts that share a slot just serialize with each other
SHIFT_LOCK_POOL_SIZE = 64
_shift_locks = tuple(threading.RLock() for _ in range(SHIFT_LOCK_POOL_SIZE))


def lock_for_shift(shift_id: int) -> threading.RLock:
    return _shift_locks[int(shift_id) % SHIFT_LOCK_POOL_SIZE]


@contextmanager
def shift_lock(shift_id: int):
    """
    In-process single-writer lock for one shift's aggregates.

    Settlement, void and expenses all move the same totals and stock
    counters; this serializes them per shift within a process. Across
    processes the row lock and version_id check take over.
    """
    with lock_for_shift(shift_id):
        yield
