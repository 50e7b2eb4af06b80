"""
Create a user (e.g. an extra admin). Run from project root:
  python -m app.scripts.create_user USERNAME EMAIL PASSWORD [role_id]
Example:
  python -m app.scripts.create_user alice alice@company.com your-secure-password supervisor
"""
import argparse
import sys

from app.core.database import SessionLocal
from app.core.security import PASSWORD_MAX_LEN, PASSWORD_MIN_LEN, USERNAME_MAX_LEN, hash_password
from app.models.user import User
from app.services import credential_store


def main() -> int:
    parser = argparse.ArgumentParser(description="Create a Ticketdesk user.")
    parser.add_argument("username", help=f"Username (1-{USERNAME_MAX_LEN} chars)")
    parser.add_argument("email", help="Email address")
    parser.add_argument("password", help=f"Password ({PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} chars)")
    parser.add_argument("role_id", nargs="?", default="agent", help="Role id (default: agent)")
    args = parser.parse_args()

    username = credential_store.normalize_username(args.username)
    if not username or len(username) > USERNAME_MAX_LEN:
        print("Invalid username length.", file=sys.stderr)
        return 1
    if len(args.password) < PASSWORD_MIN_LEN or len(args.password) > PASSWORD_MAX_LEN:
        print(f"Password must be {PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} characters.", file=sys.stderr)
        return 1

    db = SessionLocal()
    try:
        if credential_store.get_user_by_username(db, username):
            print(f"User '{username}' already exists.", file=sys.stderr)
            return 1
        if credential_store.get_user_by_email(db, args.email):
            print(f"Email '{args.email}' already in use.", file=sys.stderr)
            return 1
        if credential_store.get_role_by_id(db, args.role_id) is None:
            print(f"Role '{args.role_id}' does not exist; run app.scripts.seed first.", file=sys.stderr)
            return 1
        user = User(
            username=username,
            email=credential_store.normalize_email(args.email),
            password_hash=hash_password(args.password),
            role_id=args.role_id,
            is_active=True,
        )
        db.add(user)
        db.commit()
        print(f"Created user '{username}' with role '{args.role_id}'.")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
