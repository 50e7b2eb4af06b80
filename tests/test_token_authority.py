"""Tests for app.services.token_authority against an in-memory SQLite store."""

import math
import time
import unittest
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import patch

import jwt

from app.core.config import get_settings
from app.core.database import SessionLocal
from app.models import RefreshToken
from app.services import credential_store, token_authority, token_store
from app.services.token_authority import (
    InactiveUserError,
    InvalidRefreshTokenError,
    create_access_token,
    issue_tokens,
    refresh_tokens,
    verify_access_token,
)
from support import ADMIN_USERNAME, create_user, reset_database


def _next_whole_second() -> datetime:
    """A whole-second timestamp no earlier than now and less than one second ahead."""
    return datetime.fromtimestamp(math.ceil(time.time()), UTC)


class TokenAuthorityTestCase(unittest.TestCase):
    def setUp(self) -> None:
        reset_database()
        self.db = SessionLocal()
        self.settings = get_settings()
        self.admin = credential_store.get_user_by_username(self.db, ADMIN_USERNAME)

    def tearDown(self) -> None:
        self.db.close()

    def _rows(self) -> list[RefreshToken]:
        return self.db.query(RefreshToken).order_by(RefreshToken.id).all()


class TestAccessTokens(TokenAuthorityTestCase):
    def test_claims_carry_role_and_admin_flag(self) -> None:
        claims = verify_access_token(create_access_token(self.admin))
        self.assertIsNotNone(claims)
        self.assertEqual(claims.user_id, self.admin.id)
        self.assertEqual(claims.username, ADMIN_USERNAME)
        self.assertEqual(claims.role_id, "admin")
        self.assertTrue(claims.is_admin)
        self.assertEqual(
            claims.expires_at - claims.issued_at,
            timedelta(minutes=self.settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        )

    def test_non_admin_claims(self) -> None:
        agent = create_user(self.db, "agent1")
        claims = verify_access_token(create_access_token(agent))
        self.assertEqual(claims.role_id, "agent")
        self.assertFalse(claims.is_admin)

    def test_valid_one_second_before_expiry(self) -> None:
        ttl = timedelta(minutes=self.settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        issued_at = _next_whole_second() - ttl + timedelta(seconds=1)
        self.assertIsNotNone(verify_access_token(create_access_token(self.admin, issued_at=issued_at)))

    def test_invalid_one_second_after_expiry(self) -> None:
        ttl = timedelta(minutes=self.settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        issued_at = _next_whole_second() - ttl - timedelta(seconds=1)
        self.assertIsNone(verify_access_token(create_access_token(self.admin, issued_at=issued_at)))

    def test_wrong_signature_rejected(self) -> None:
        now = datetime.now(UTC)
        forged = jwt.encode(
            {
                "sub": str(self.admin.id),
                "type": "access",
                "is_admin": True,
                "iat": now,
                "exp": now + timedelta(minutes=5),
            },
            "some-other-secret",
            algorithm="HS256",
        )
        self.assertIsNone(verify_access_token(forged))

    def test_garbage_rejected(self) -> None:
        self.assertIsNone(verify_access_token("not.a.jwt"))
        self.assertIsNone(verify_access_token(""))

    def test_wrong_token_type_rejected(self) -> None:
        now = datetime.now(UTC)
        token = jwt.encode(
            {"sub": str(self.admin.id), "type": "refresh", "iat": now, "exp": now + timedelta(minutes=5)},
            self.settings.JWT_SECRET.get_secret_value(),
            algorithm=self.settings.JWT_ALGORITHM,
        )
        self.assertIsNone(verify_access_token(token))

    def test_missing_exp_rejected(self) -> None:
        token = jwt.encode(
            {"sub": str(self.admin.id), "type": "access", "iat": datetime.now(UTC)},
            self.settings.JWT_SECRET.get_secret_value(),
            algorithm=self.settings.JWT_ALGORITHM,
        )
        self.assertIsNone(verify_access_token(token))


class TestIssueTokens(TokenAuthorityTestCase):
    def test_issue_persists_digest_only(self) -> None:
        tokens = issue_tokens(self.db, self.admin, user_agent="pytest", ip_address="10.0.0.1")
        self.assertEqual(tokens.token_type, "Bearer")
        self.assertEqual(tokens.expires_in, self.settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60)
        self.assertEqual(len(tokens.refresh_token), 128)
        rows = self._rows()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].token_hash, token_store.hash_token(tokens.refresh_token))
        self.assertNotEqual(rows[0].token_hash, tokens.refresh_token)
        self.assertEqual(rows[0].user_agent, "pytest")
        self.assertEqual(rows[0].ip_address, "10.0.0.1")
        self.assertFalse(rows[0].revoked)

    def test_each_issue_is_distinct(self) -> None:
        first = issue_tokens(self.db, self.admin)
        second = issue_tokens(self.db, self.admin)
        self.assertNotEqual(first.refresh_token, second.refresh_token)

    def test_inactive_user_gets_nothing(self) -> None:
        user = create_user(self.db, "sleeper", is_active=False)
        with self.assertRaises(InactiveUserError):
            issue_tokens(self.db, user)
        self.assertEqual(self._rows(), [])


class TestRefreshTokens(TokenAuthorityTestCase):
    def test_rotation_replaces_token(self) -> None:
        first = issue_tokens(self.db, self.admin)
        second = refresh_tokens(self.db, first.refresh_token)
        self.assertNotEqual(first.refresh_token, second.refresh_token)
        self.assertIsNotNone(verify_access_token(second.access_token))
        with self.assertRaises(InvalidRefreshTokenError):
            refresh_tokens(self.db, first.refresh_token)
        third = refresh_tokens(self.db, second.refresh_token)
        self.assertNotEqual(second.refresh_token, third.refresh_token)

    def test_unknown_token_rejected(self) -> None:
        with self.assertRaises(InvalidRefreshTokenError):
            refresh_tokens(self.db, "f" * 128)

    def test_expired_token_rejected(self) -> None:
        past = datetime.now(UTC) - timedelta(days=self.settings.REFRESH_TOKEN_EXPIRE_DAYS + 1)
        tokens = issue_tokens(self.db, self.admin, now=past)
        with self.assertRaises(InvalidRefreshTokenError):
            refresh_tokens(self.db, tokens.refresh_token)

    def test_concurrent_consumer_loses(self) -> None:
        """A request that read the row before another consumed it must not get new tokens."""
        tokens = issue_tokens(self.db, self.admin)
        stale_row = SimpleNamespace(user_id=self.admin.id)
        refresh_tokens(self.db, tokens.refresh_token)
        sessions_before = token_authority.count_active_sessions(self.db, self.admin.id)
        with patch.object(token_store, "find_refresh_token_by_value", return_value=stale_row):
            with self.assertRaises(InvalidRefreshTokenError):
                refresh_tokens(self.db, tokens.refresh_token)
        self.assertEqual(
            token_authority.count_active_sessions(self.db, self.admin.id), sessions_before
        )

    def test_token_expiring_after_lookup_is_not_consumed(self) -> None:
        """A row that was live when read but expired by the update must not rotate."""
        past = datetime.now(UTC) - timedelta(days=self.settings.REFRESH_TOKEN_EXPIRE_DAYS + 1)
        tokens = issue_tokens(self.db, self.admin, now=past)
        stale_row = SimpleNamespace(user_id=self.admin.id)
        with patch.object(token_store, "find_refresh_token_by_value", return_value=stale_row):
            with self.assertRaises(InvalidRefreshTokenError):
                refresh_tokens(self.db, tokens.refresh_token)
        self.assertEqual(token_authority.count_active_sessions(self.db, self.admin.id), 0)
        self.assertFalse(self._rows()[0].revoked)

    def test_deactivated_user_cannot_refresh(self) -> None:
        user = create_user(self.db, "leaver")
        tokens = issue_tokens(self.db, user)
        user.is_active = False
        self.db.commit()
        with self.assertRaises(InactiveUserError):
            refresh_tokens(self.db, tokens.refresh_token)
        # The presented token is burned, even after reactivation.
        user.is_active = True
        self.db.commit()
        with self.assertRaises(InvalidRefreshTokenError):
            refresh_tokens(self.db, tokens.refresh_token)

    def test_deleted_user_cannot_refresh(self) -> None:
        user = create_user(self.db, "gone")
        tokens = issue_tokens(self.db, user)
        self.db.delete(user)
        self.db.commit()
        with self.assertRaises(token_authority.TokenAuthorityError):
            refresh_tokens(self.db, tokens.refresh_token)


class TestRevocation(TokenAuthorityTestCase):
    def test_revoke_is_idempotent(self) -> None:
        tokens = issue_tokens(self.db, self.admin)
        self.assertTrue(token_authority.revoke_refresh_token(self.db, tokens.refresh_token))
        self.assertFalse(token_authority.revoke_refresh_token(self.db, tokens.refresh_token))
        self.assertFalse(token_authority.revoke_refresh_token(self.db, "unknown"))
        with self.assertRaises(InvalidRefreshTokenError):
            refresh_tokens(self.db, tokens.refresh_token)

    def test_mark_revoked_skips_expired_rows(self) -> None:
        issued_at = token_authority.utcnow()
        tokens = issue_tokens(self.db, self.admin, now=issued_at)
        lifetime = timedelta(days=self.settings.REFRESH_TOKEN_EXPIRE_DAYS)
        after_expiry = issued_at + lifetime + timedelta(seconds=1)
        self.assertFalse(token_store.mark_revoked(self.db, tokens.refresh_token, after_expiry))
        self.assertTrue(token_store.mark_revoked(self.db, tokens.refresh_token, issued_at))
        self.db.commit()

    def test_revoking_expired_token_reports_nothing_revoked(self) -> None:
        past = datetime.now(UTC) - timedelta(days=self.settings.REFRESH_TOKEN_EXPIRE_DAYS + 1)
        tokens = issue_tokens(self.db, self.admin, now=past)
        self.assertFalse(token_authority.revoke_refresh_token(self.db, tokens.refresh_token))

    def test_revoke_all_sessions(self) -> None:
        issued = [issue_tokens(self.db, self.admin) for _ in range(3)]
        other = create_user(self.db, "bystander")
        kept = issue_tokens(self.db, other)

        self.assertEqual(token_authority.revoke_all_sessions(self.db, self.admin.id), 3)
        self.assertEqual(token_authority.list_active_sessions(self.db, self.admin.id), [])
        for tokens in issued:
            with self.assertRaises(InvalidRefreshTokenError):
                refresh_tokens(self.db, tokens.refresh_token)
        self.assertIsNotNone(refresh_tokens(self.db, kept.refresh_token))
        self.assertEqual(token_authority.revoke_all_sessions(self.db, self.admin.id), 0)


class TestSessions(TokenAuthorityTestCase):
    def test_active_sessions_exclude_revoked_and_expired(self) -> None:
        past = datetime.now(UTC) - timedelta(days=self.settings.REFRESH_TOKEN_EXPIRE_DAYS + 1)
        issue_tokens(self.db, self.admin, now=past)
        revoked = issue_tokens(self.db, self.admin)
        token_authority.revoke_refresh_token(self.db, revoked.refresh_token)
        live = issue_tokens(self.db, self.admin, user_agent="browser")

        sessions = token_authority.list_active_sessions(self.db, self.admin.id)
        self.assertEqual(len(sessions), 1)
        self.assertEqual(sessions[0].token_hash, token_store.hash_token(live.refresh_token))
        self.assertEqual(sessions[0].user_agent, "browser")
        self.assertEqual(token_authority.count_active_sessions(self.db, self.admin.id), 1)

    def test_sweep_removes_only_dead_rows(self) -> None:
        past = datetime.now(UTC) - timedelta(days=self.settings.REFRESH_TOKEN_EXPIRE_DAYS + 1)
        issue_tokens(self.db, self.admin, now=past)
        revoked = issue_tokens(self.db, self.admin)
        token_authority.revoke_refresh_token(self.db, revoked.refresh_token)
        live = issue_tokens(self.db, self.admin)

        self.assertEqual(token_authority.sweep_expired(self.db), 1)
        self.assertEqual(len(self._rows()), 2)
        self.assertEqual(token_authority.sweep_expired(self.db, purge_revoked=True), 1)
        rows = self._rows()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].token_hash, token_store.hash_token(live.refresh_token))
        self.assertIsNotNone(refresh_tokens(self.db, live.refresh_token))


if __name__ == "__main__":
    unittest.main()
