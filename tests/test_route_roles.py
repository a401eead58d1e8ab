import re
import unittest

from amc_portal.dependencies import ROUTE_ROLES, roles_for

from support import PortalTestCase


def concrete(template):
    return re.sub(r"\{[^}]+\}", "1", template)


class RouteRoleTableTests(unittest.TestCase):
    def test_admin_only_routes(self):
        for method, path in [("POST", "/tasks"), ("GET", "/users"), ("POST", "/auth/register")]:
            self.assertEqual(roles_for(method, path), ("admin",))

    def test_login_is_public(self):
        self.assertIsNone(roles_for("POST", "/auth/login"))

    def test_method_is_case_insensitive(self):
        self.assertEqual(roles_for("get", "/user-tasks"), ("personnel",))

    def test_concrete_paths_match_their_templates(self):
        self.assertEqual(roles_for("GET", "/users/5"), ("admin",))
        self.assertEqual(roles_for("DELETE", "/equipment/3"), ("admin",))
        self.assertEqual(roles_for("GET", "/equipment/3/history"), ("admin", "personnel"))
        self.assertEqual(roles_for("PUT", "/tasks/7/status"), ("personnel",))
        self.assertEqual(roles_for("GET", "/users/5/"), ("admin",))

    def test_parameters_do_not_span_segments(self):
        self.assertIsNone(roles_for("DELETE", "/equipment/3/history"))
        self.assertIsNone(roles_for("GET", "/uploads/tasks/a.png"))


class RouteGuardTests(PortalTestCase):
    def test_every_table_entry_requires_a_token(self):
        for method, template in ROUTE_ROLES:
            response = self.client.request(method, concrete(template))
            self.assertEqual(response.status_code, 401, f"{method} {template}")

    def test_admin_routes_refuse_personnel(self):
        for (method, template), roles in ROUTE_ROLES.items():
            if "personnel" in roles:
                continue
            response = self.client.request(method, concrete(template), headers=self.headers(self.tech))
            self.assertEqual(response.status_code, 403, f"{method} {template}")

    def test_public_routes_need_no_token(self):
        self.assertEqual(self.client.get("/").status_code, 200)
        response = self.client.post("/auth/login", json={"username": "boss", "password": "bosspass", "role": "admin"})
        self.assertEqual(response.status_code, 200)


if __name__ == "__main__":
    unittest.main()
