import os
import shutil
import tempfile
import unittest
from datetime import timedelta

from fastapi.testclient import TestClient

from amc_portal import config
from amc_portal.database import get_db, init_db, insert_user
from amc_portal.main import app
from amc_portal.security import token_for_user
from amc_portal.task_status import to_iso, utc_now


class PortalTestCase(unittest.TestCase):
    """Fresh SQLite file and upload directory per test, with one admin and two personnel."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self._saved = (config.DB_PATH, config.UPLOAD_DIR)
        config.DB_PATH = os.path.join(self.tmpdir, "portal.db")
        config.UPLOAD_DIR = os.path.join(self.tmpdir, "uploads")
        init_db(create_admin=False)

        conn = get_db()
        self.admin = self._user(conn, "boss", "bosspass", "admin")
        self.tech = self._user(conn, "tech", "techpass", "personnel")
        self.other = self._user(conn, "other", "otherpass", "personnel")
        conn.close()

        self.client = TestClient(app)

    def tearDown(self):
        config.DB_PATH, config.UPLOAD_DIR = self._saved
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    @staticmethod
    def _user(conn, username, password, role):
        user_id = insert_user(conn, username, password, role, f"{username}@example.com", username.title())
        return {"id": user_id, "username": username, "role": role, "password": password}

    def headers(self, user):
        return {"Authorization": f"Bearer {token_for_user(user)}"}

    def create_task(self, assignee=None, hours_from_now=48, category="daily", **extra):
        body = {
            "title": "Check HVAC",
            "category": category,
            "assigned_to": (assignee or self.tech)["id"],
            "benchmark_time": to_iso(utc_now() + timedelta(hours=hours_from_now)),
        }
        body.update(extra)
        response = self.client.post("/tasks", json=body, headers=self.headers(self.admin))
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()["data"]

    def fetch_row(self, table, row_id):
        conn = get_db()
        row = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (row_id,)).fetchone()
        conn.close()
        return dict(row) if row else None

    def count_rows(self, table):
        conn = get_db()
        count = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        conn.close()
        return count
