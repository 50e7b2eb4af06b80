"""
Seed the permission catalog, system roles and the default admin. Run from project root:
  python -m app.scripts.seed [--create-tables] [--admin-password PASSWORD]
"""
import argparse
import logging
import sys

from app.core.database import SessionLocal, engine
from app.core.security import PASSWORD_MAX_LEN, PASSWORD_MIN_LEN
from app.models import Base
from app.services.bootstrap import DEFAULT_ADMIN_PASSWORD, seed_defaults

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s %(message)s")


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed Ticketdesk roles, permissions and admin user.")
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables first (local SQLite; use alembic upgrade head for Postgres)",
    )
    parser.add_argument(
        "--admin-password",
        default=DEFAULT_ADMIN_PASSWORD,
        help="Password for the admin user if it has to be created",
    )
    args = parser.parse_args()

    if not (PASSWORD_MIN_LEN <= len(args.admin_password) <= PASSWORD_MAX_LEN):
        print(f"Password must be {PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} characters.", file=sys.stderr)
        return 1

    if args.create_tables:
        Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        seed_defaults(db, admin_password=args.admin_password)
        print("Seed completed.")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
