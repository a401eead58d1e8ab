import unittest
from unittest import mock

from amc_portal.database import get_db, insert_user
from amc_portal.security import create_access_token, decode_token, hash_password

from support import PortalTestCase


class LoginTests(PortalTestCase):
    def login(self, username, password, role):
        return self.client.post("/auth/login", json={"username": username, "password": password, "role": role})

    def test_login_returns_token_with_stored_role(self):
        response = self.login("tech", "techpass", "personnel")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        payload = decode_token(body["data"]["token"])
        self.assertEqual(payload["role"], "personnel")
        self.assertEqual(payload["userId"], self.tech["id"])
        self.assertEqual(payload["username"], "tech")
        self.assertNotIn("password", body["data"]["user"])

    def test_role_mismatch_is_forbidden_even_with_right_password(self):
        response = self.login("tech", "techpass", "admin")
        self.assertEqual(response.status_code, 403)
        self.assertFalse(response.json()["success"])

    def test_role_mismatch_is_forbidden_with_wrong_password(self):
        response = self.login("boss", "not-the-password", "personnel")
        self.assertEqual(response.status_code, 403)

    def test_wrong_password(self):
        self.assertEqual(self.login("tech", "nope", "personnel").status_code, 401)

    def test_unknown_user(self):
        self.assertEqual(self.login("ghost", "nope", "personnel").status_code, 401)

    def test_missing_role_is_bad_request(self):
        response = self.client.post("/auth/login", json={"username": "tech", "password": "techpass"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("role", response.json()["message"])

    def test_invalid_role_is_bad_request(self):
        self.assertEqual(self.login("tech", "techpass", "superuser").status_code, 400)


class TokenTests(PortalTestCase):
    def test_missing_token(self):
        response = self.client.get("/tasks")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.headers.get("www-authenticate"), "Bearer")

    def test_garbage_token(self):
        response = self.client.get("/tasks", headers={"Authorization": "Bearer not-a-jwt"})
        self.assertEqual(response.status_code, 401)

    def test_expired_token(self):
        token = create_access_token(
            {"sub": "tech", "userId": self.tech["id"], "role": "personnel", "username": "tech"},
            expires_hours=-1,
        )
        response = self.client.get("/tasks", headers={"Authorization": f"Bearer {token}"})
        self.assertEqual(response.status_code, 401)
        self.assertIn("expired", response.json()["message"])

    def test_token_of_deleted_user(self):
        conn = get_db()
        conn.execute("DELETE FROM users WHERE id = ?", (self.other["id"],))
        conn.commit()
        conn.close()

        response = self.client.get("/tasks", headers=self.headers(self.other))
        self.assertEqual(response.status_code, 401)

    def test_me(self):
        response = self.client.get("/auth/me", headers=self.headers(self.tech))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["username"], "tech")

    def test_health_is_public(self):
        response = self.client.get("/")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["success"])


class RegisterTests(PortalTestCase):
    body = {
        "username": "newbie",
        "password": "secret",
        "email": "newbie@example.com",
        "full_name": "New Bie",
        "role": "personnel",
    }

    def test_admin_registers_user(self):
        response = self.client.post("/auth/register", json=self.body, headers=self.headers(self.admin))

        self.assertEqual(response.status_code, 201)
        data = response.json()["data"]
        self.assertEqual(data["user"]["role"], "personnel")
        self.assertEqual(decode_token(data["token"])["userId"], data["user"]["id"])

        login = self.client.post(
            "/auth/login", json={"username": "newbie", "password": "secret", "role": "personnel"}
        )
        self.assertEqual(login.status_code, 200)

    def test_personnel_cannot_register(self):
        response = self.client.post("/auth/register", json=self.body, headers=self.headers(self.tech))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(self.count_rows("users"), 3)

    def test_anonymous_cannot_register(self):
        response = self.client.post("/auth/register", json=self.body)
        self.assertEqual(response.status_code, 401)

    def test_duplicate_username(self):
        body = dict(self.body, username="tech")
        response = self.client.post("/auth/register", json=body, headers=self.headers(self.admin))
        self.assertEqual(response.status_code, 400)

    def test_username_taken_between_check_and_insert(self):
        def register_rival(password):
            conn = get_db()
            insert_user(conn, "newbie", "rivalpass", "personnel", "rival@example.com", "Rival")
            conn.close()
            return hash_password(password)

        with mock.patch("amc_portal.auth.hash_password", side_effect=register_rival):
            response = self.client.post("/auth/register", json=self.body, headers=self.headers(self.admin))

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Username or email already exists")
        self.assertEqual(self.count_rows("users"), 4)

    def test_invalid_role(self):
        body = dict(self.body, role="manager")
        response = self.client.post("/auth/register", json=body, headers=self.headers(self.admin))
        self.assertEqual(response.status_code, 400)


if __name__ == "__main__":
    unittest.main()
