"""Shared helpers for tests: fresh schema, seeded defaults, users and HTTP login."""

import threading
import time
import unittest
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

from fastapi.testclient import TestClient

from app.core.database import SessionLocal, engine
from app.core.security import hash_password
from app.main import app
from app.models import Base, User
from app.services import credential_store
from app.services.admin_guard import admin_change_guard
from app.services.bootstrap import seed_defaults
from app.services.login_throttle import get_login_throttle

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "admin123"
DEFAULT_PASSWORD = "password123"


def reset_database() -> None:
    """Drop and recreate all tables, seed roles/permissions/admin, clear login throttling."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_defaults(db)
    finally:
        db.close()
    get_login_throttle().reset_all()


def create_user(
    db,
    username: str,
    role_id: str | None = "agent",
    password: str = DEFAULT_PASSWORD,
    is_active: bool = True,
) -> User:
    user = User(
        username=username,
        email=f"{username}@example.com",
        password_hash=hash_password(password),
        role_id=role_id,
        is_active=is_active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def login(client, username: str = ADMIN_USERNAME, password: str = ADMIN_PASSWORD) -> dict:
    response = client.post("/api/v1/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return response.json()


def bearer(access_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {access_token}"}


def count_active_admins() -> int:
    db = SessionLocal()
    try:
        return sum(
            1 for u in credential_store.list_users(db) if u.is_active and u.role is not None and u.role.is_admin
        )
    finally:
        db.close()


def gathering_admin_guard(parties: int):
    """admin_change_guard that lets no caller in until all parties have reached it."""
    barrier = threading.Barrier(parties, timeout=10)

    def guard(db):
        barrier.wait()
        return admin_change_guard(db)

    return guard


def slowed(func: Callable, delay: float = 0.2) -> Callable:
    """Wrap func so each call sleeps first, widening any check-then-write window."""

    def wrapper(*args, **kwargs):
        time.sleep(delay)
        return func(*args, **kwargs)

    return wrapper


def run_in_parallel(*calls: Callable):
    """Run calls on separate threads; results in call order."""
    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        futures = [pool.submit(call) for call in calls]
        return [f.result() for f in futures]


class ApiTestCase(unittest.TestCase):
    """Fresh seeded database and a TestClient per test."""

    def setUp(self) -> None:
        reset_database()
        self.client = TestClient(app)

    def _create_user(self, username: str, role_id: str | None = "agent", **kwargs) -> int:
        db = SessionLocal()
        try:
            return create_user(db, username, role_id=role_id, **kwargs).id
        finally:
            db.close()

    def _set_active(self, user_id: int, is_active: bool) -> None:
        db = SessionLocal()
        try:
            credential_store.get_user_by_id(db, user_id).is_active = is_active
            db.commit()
        finally:
            db.close()

    def _admin_id(self) -> int:
        db = SessionLocal()
        try:
            return credential_store.get_user_by_username(db, ADMIN_USERNAME).id
        finally:
            db.close()

    def _headers_for(self, username: str, password: str = DEFAULT_PASSWORD) -> dict[str, str]:
        return bearer(login(self.client, username, password)["accessToken"])

    def _admin_headers(self) -> dict[str, str]:
        return self._headers_for(ADMIN_USERNAME, ADMIN_PASSWORD)
