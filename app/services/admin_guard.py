"""
Serializes changes that can leave the system without an active administrator.

A last-admin check and the change it allows run as one critical section:
a process-wide lock covers request threads, and row locks on the roles table
cover other processes sharing a PostgreSQL database.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.orm import Session

from app.models import Role, User
from app.services import credential_store

_lock = threading.Lock()


@contextmanager
def admin_change_guard(db: Session) -> Iterator[tuple[list[User], list[Role]]]:
    """
    Yield fresh (users, roles) for a last-admin check. The caller applies its
    change and commits inside the block; an exception rolls the session back.
    """
    with _lock:
        try:
            yield credential_store.lock_admin_state(db)
        except BaseException:
            db.rollback()
            raise
