"""Session sweep: delete refresh tokens that can no longer be used."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from app.core.database import SessionLocal
from app.services.login_throttle import get_login_throttle
from app.services.token_authority import sweep_expired

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)


def run_session_sweep(
    session: Session, settings: "Settings", now: datetime | None = None
) -> int:
    """
    Delete refresh tokens past expires_at, plus revoked ones when
    SESSION_SWEEP_PURGE_REVOKED is set. Idempotent: safe to run repeatedly.
    """
    cutoff = now or datetime.now(timezone.utc)
    deleted_count = sweep_expired(
        session, purge_revoked=settings.SESSION_SWEEP_PURGE_REVOKED, now=cutoff
    )
    if deleted_count > 0:
        logger.info(
            "Session sweep: cutoff=%s, tokens_deleted=%s",
            cutoff.isoformat(),
            deleted_count,
        )
    return deleted_count


def _sweep_once(settings: "Settings") -> int:
    db = SessionLocal()
    try:
        return run_session_sweep(db, settings)
    finally:
        db.close()


async def session_sweep_loop(settings: "Settings") -> None:
    """Background task: sweep sessions and idle throttle keys every SESSION_SWEEP_INTERVAL_SEC."""
    interval = settings.SESSION_SWEEP_INTERVAL_SEC
    while True:
        try:
            await asyncio.sleep(interval)
            await asyncio.to_thread(_sweep_once, settings)
            get_login_throttle().cleanup()
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.warning("Session sweep failed: %s", e)
