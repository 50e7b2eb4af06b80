"""Credential store: user and role lookups used by the auth core."""

from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models import Role, User


def normalize_username(username: str) -> str:
    return username.strip().lower()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_user_by_id(db: Session, user_id: int) -> User | None:
    return db.query(User).filter(User.id == user_id).first()


def get_user_by_username(db: Session, username: str) -> User | None:
    """Case-insensitive username lookup."""
    return (
        db.query(User)
        .filter(func.lower(User.username) == normalize_username(username))
        .first()
    )


def get_user_by_email(db: Session, email: str) -> User | None:
    """Case-insensitive email lookup."""
    return db.query(User).filter(func.lower(User.email) == normalize_email(email)).first()


def get_role_by_id(db: Session, role_id: str) -> Role | None:
    return db.query(Role).filter(Role.id == role_id).first()


def get_role_by_name(db: Session, name: str) -> Role | None:
    return db.query(Role).filter(func.lower(Role.name) == name.strip().lower()).first()


def list_users(db: Session) -> list[User]:
    return db.query(User).order_by(User.id).all()


def list_roles(db: Session) -> list[Role]:
    return db.query(Role).order_by(Role.is_system.desc(), Role.name).all()


def count_users_with_role(db: Session, role_id: str) -> int:
    return db.query(User).filter(User.role_id == role_id).count()


def update_last_login(db: Session, user_id: int, timestamp: datetime) -> None:
    db.query(User).filter(User.id == user_id).update(
        {User.last_login_at: timestamp}, synchronize_session=False
    )
    db.commit()


def lock_admin_state(db: Session) -> tuple[list[User], list[Role]]:
    """
    Re-read every user and role for a last-admin check. The role rows stay
    locked (SELECT ... FOR UPDATE on PostgreSQL) until the transaction ends.
    """
    roles = db.query(Role).order_by(Role.id).with_for_update().populate_existing().all()
    users = db.query(User).order_by(User.id).populate_existing().all()
    return users, roles
