"""
CLI entrypoint for the expired-session sweep. Run from cron, e.g.:

  python -m app.sweep

Or hourly: 0 * * * * cd /path/to/ticketdesk && .venv/bin/python -m app.sweep
"""

import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from app.core.config import get_settings
from app.core.database import SessionLocal
from app.services.session_sweep import run_session_sweep

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def main() -> int:
    """Delete refresh tokens past their expiry (and revoked ones if configured)."""
    settings = get_settings()
    db = SessionLocal()
    try:
        tokens_deleted = run_session_sweep(db, settings)
        logger.info("Session sweep completed: tokens_deleted=%s", tokens_deleted)
        return 0
    except SQLAlchemyError as e:
        logger.exception("Session sweep failed: %s", e)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
