from __future__ import annotations

import logging
import math
import threading
from contextlib import contextmanager

from django.db import connection
from django.db.utils import OperationalError

logger = logging.getLogger(__name__)


class DrawLockError(Exception):
    """Raised when a draw or store lock cannot be acquired in time."""


DRAW_LOCK_NAME = "luckydraw:draw"
STORE_LOCK_NAME = "luckydraw:store"

# Without MySQL named locks (SQLite) these only serialize this process.
_PROCESS_LOCKS = {
    DRAW_LOCK_NAME: threading.Lock(),
    STORE_LOCK_NAME: threading.RLock(),
}


@contextmanager
def _process_lock(name: str, timeout: float, busy_message: str):
    lock = _PROCESS_LOCKS[name]
    if not lock.acquire(timeout=timeout):
        raise DrawLockError(busy_message)
    try:
        yield
    finally:
        lock.release()


@contextmanager
def _mysql_lock(name: str, timeout: float, busy_message: str):
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT GET_LOCK(%s, %s)", [name, math.ceil(timeout)])
            row = cursor.fetchone()
    except OperationalError as exc:
        raise DrawLockError(f"Failed to acquire lock {name}: {exc}") from exc

    if not row or row[0] != 1:
        raise DrawLockError(busy_message)

    try:
        yield
    finally:
        try:
            with connection.cursor() as cursor:
                cursor.execute("SELECT RELEASE_LOCK(%s)", [name])
        except OperationalError as exc:
            # The server drops the lock with the session anyway.
            logger.warning("Failed to release lock %s: %s", name, exc)


def _named_lock(name: str, timeout: float, busy_message: str):
    if connection.vendor == "mysql":
        return _mysql_lock(name, timeout, busy_message)
    return _process_lock(name, timeout, busy_message)


def reward_draw_lock(timeout: float = 5):
    """Serialize draw sequences across every worker sharing the database."""
    return _named_lock(
        DRAW_LOCK_NAME, timeout, "Draw system is busy. Please try again later."
    )


def reward_store_lock(timeout: float = 5):
    """Serialize read-modify-write cycles on the reward table."""
    return _named_lock(
        STORE_LOCK_NAME, timeout, "Reward store is busy. Please try again later."
    )
