"""HTTP tests for /api/v1/users: admin-only writes and the last-admin invariant."""

import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from app.main import app
from app.services import permissions
from support import (
    DEFAULT_PASSWORD,
    ApiTestCase,
    count_active_admins,
    gathering_admin_guard,
    login,
    run_in_parallel,
    slowed,
)

USERS = "/api/v1/users"
LAST_ADMIN = "Cannot remove the last active administrator"


class TestUserReads(ApiTestCase):
    def test_list_requires_user_view(self) -> None:
        self._create_user("agent1")
        response = self.client.get(USERS, headers=self._headers_for("agent1"))
        self.assertEqual(response.status_code, 403)

    def test_supervisor_lists_users_without_hashes(self) -> None:
        self._create_user("lead", role_id="supervisor")
        response = self.client.get(USERS, headers=self._headers_for("lead"))
        self.assertEqual(response.status_code, 200)
        usernames = [u["username"] for u in response.json()["users"]]
        self.assertEqual(usernames, ["admin", "lead"])
        self.assertNotIn("passwordHash", response.text)

    def test_get_includes_active_sessions(self) -> None:
        user_id = self._create_user("agent1")
        login(self.client, "agent1", DEFAULT_PASSWORD)
        login(self.client, "agent1", DEFAULT_PASSWORD)
        response = self.client.get(f"{USERS}/{user_id}", headers=self._admin_headers())
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["activeSessions"], 2)
        self.assertEqual(response.json()["roleName"], "Support Agent")

    def test_get_unknown_user(self) -> None:
        response = self.client.get(f"{USERS}/9999", headers=self._admin_headers())
        self.assertEqual(response.status_code, 404)


class TestUserCreate(ApiTestCase):
    def _payload(self, **overrides) -> dict:
        payload = {
            "username": "NewAgent",
            "email": "New.Agent@Example.com",
            "password": "password123",
            "firstName": "New",
            "lastName": "Agent",
            "roleId": "agent",
        }
        payload.update(overrides)
        return payload

    def test_admin_creates_user(self) -> None:
        response = self.client.post(USERS, json=self._payload(), headers=self._admin_headers())
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["username"], "newagent")
        self.assertEqual(body["email"], "new.agent@example.com")
        self.assertNotIn("password", body)
        login(self.client, "newagent", "password123")

    def test_duplicate_username_ignores_case(self) -> None:
        headers = self._admin_headers()
        self.client.post(USERS, json=self._payload(), headers=headers)
        response = self.client.post(
            USERS, json=self._payload(username="NEWAGENT", email="other@example.com"), headers=headers
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Username already exists")

    def test_duplicate_email(self) -> None:
        headers = self._admin_headers()
        self.client.post(USERS, json=self._payload(), headers=headers)
        response = self.client.post(USERS, json=self._payload(username="second"), headers=headers)
        self.assertEqual(response.status_code, 400)

    def test_unknown_role(self) -> None:
        response = self.client.post(
            USERS, json=self._payload(roleId="wizard"), headers=self._admin_headers()
        )
        self.assertEqual(response.status_code, 400)

    def test_non_admin_cannot_create(self) -> None:
        self._create_user("lead", role_id="supervisor")
        response = self.client.post(USERS, json=self._payload(), headers=self._headers_for("lead"))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["detail"], "Admin access required")


class TestUserUpdate(ApiTestCase):
    def _create_user_manager(self) -> dict[str, str]:
        """A non-admin account holding user_edit."""
        response = self.client.post(
            "/api/v1/roles",
            json={"name": "User Manager", "permissions": ["user_view", "user_edit"]},
            headers=self._admin_headers(),
        )
        self.assertEqual(response.status_code, 201)
        self._create_user("manager", role_id=response.json()["id"])
        return self._headers_for("manager")

    def test_admin_cannot_demote_sole_admin(self) -> None:
        response = self.client.put(
            f"{USERS}/{self._admin_id()}", json={"roleId": "agent"}, headers=self._admin_headers()
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], LAST_ADMIN)

    def test_cannot_deactivate_sole_admin(self) -> None:
        headers = self._create_user_manager()
        response = self.client.put(
            f"{USERS}/{self._admin_id()}", json={"isActive": False}, headers=headers
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], LAST_ADMIN)

    def test_deactivate_admin_when_another_exists(self) -> None:
        self._create_user("admin2", role_id="admin")
        response = self.client.put(
            f"{USERS}/{self._admin_id()}", json={"isActive": False}, headers=self._headers_for("admin2")
        )
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["isActive"])

    def test_non_admin_role_change_is_ignored(self) -> None:
        headers = self._create_user_manager()
        user_id = self._create_user("agent1")
        response = self.client.put(
            f"{USERS}/{user_id}", json={"roleId": "admin", "firstName": "Ann"}, headers=headers
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["roleId"], "agent")
        self.assertEqual(response.json()["firstName"], "Ann")

    def test_deactivation_revokes_sessions(self) -> None:
        user_id = self._create_user("agent1")
        tokens = login(self.client, "agent1", DEFAULT_PASSWORD)
        response = self.client.put(
            f"{USERS}/{user_id}", json={"isActive": False}, headers=self._admin_headers()
        )
        self.assertEqual(response.status_code, 200)
        refresh = self.client.post(
            "/api/v1/auth/refresh", json={"refreshToken": tokens["refreshToken"]}
        )
        self.assertEqual(refresh.status_code, 401)

    def test_password_reset_by_admin(self) -> None:
        user_id = self._create_user("agent1")
        response = self.client.put(
            f"{USERS}/{user_id}", json={"password": "brand-new-pass"}, headers=self._admin_headers()
        )
        self.assertEqual(response.status_code, 200)
        login(self.client, "agent1", "brand-new-pass")


class TestUserDelete(ApiTestCase):
    def test_cannot_delete_self(self) -> None:
        response = self.client.delete(f"{USERS}/{self._admin_id()}", headers=self._admin_headers())
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Cannot delete your own account")

    def test_delete_other_admin(self) -> None:
        other_id = self._create_user("admin2", role_id="admin")
        response = self.client.delete(f"{USERS}/{other_id}", headers=self._admin_headers())
        self.assertEqual(response.status_code, 200)
        missing = self.client.get(f"{USERS}/{other_id}", headers=self._admin_headers())
        self.assertEqual(missing.status_code, 404)

    def test_delete_user_with_sessions(self) -> None:
        user_id = self._create_user("agent1")
        tokens = login(self.client, "agent1", DEFAULT_PASSWORD)
        response = self.client.delete(f"{USERS}/{user_id}", headers=self._admin_headers())
        self.assertEqual(response.status_code, 200)
        refresh = self.client.post(
            "/api/v1/auth/refresh", json={"refreshToken": tokens["refreshToken"]}
        )
        self.assertEqual(refresh.status_code, 401)

    def test_revoke_sessions_endpoint(self) -> None:
        user_id = self._create_user("agent1")
        login(self.client, "agent1", DEFAULT_PASSWORD)
        response = self.client.post(
            f"{USERS}/{user_id}/revoke-sessions", headers=self._admin_headers()
        )
        self.assertEqual(response.json()["revoked"], 1)


class TestConcurrentAdminChanges(ApiTestCase):
    """Two admins each removing the other must leave exactly one active admin."""

    def setUp(self) -> None:
        super().setUp()
        self.admin_id = self._admin_id()
        self.other_id = self._create_user("admin2", role_id="admin")
        self.admin_headers = self._admin_headers()
        self.other_headers = self._headers_for("admin2")

    def _race(self, method: str, body: dict | None = None) -> list[int]:
        def call(user_id: int, headers: dict[str, str]):
            client = TestClient(app)
            kwargs = {"headers": headers}
            if body is not None:
                kwargs["json"] = body
            return lambda: client.request(method, f"{USERS}/{user_id}", **kwargs).status_code

        with patch("app.api.v1.users.admin_change_guard", new=gathering_admin_guard(2)), patch(
            "app.api.v1.users.last_admin_survives", side_effect=slowed(permissions.last_admin_survives)
        ):
            return run_in_parallel(
                call(self.other_id, self.admin_headers),
                call(self.admin_id, self.other_headers),
            )

    def test_mutual_delete_keeps_one_admin(self) -> None:
        self.assertEqual(sorted(self._race("DELETE")), [200, 400])
        self.assertEqual(count_active_admins(), 1)

    def test_mutual_deactivate_keeps_one_admin(self) -> None:
        self.assertEqual(sorted(self._race("PUT", {"isActive": False})), [200, 400])
        self.assertEqual(count_active_admins(), 1)


if __name__ == "__main__":
    unittest.main()
