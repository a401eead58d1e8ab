import unittest
from datetime import timedelta

from amc_portal.reminders import REMINDER_ACTION, check_task_deadlines
from amc_portal.task_status import utc_now

from support import PortalTestCase


class ReminderSweepTests(PortalTestCase):
    def reminder_logs(self):
        logs = self.client.get("/logs", headers=self.headers(self.admin)).json()["data"]
        return [log for log in logs if log["action"] == REMINDER_ACTION]

    def test_sweep_reports_without_touching_status(self):
        late = self.create_task(hours_from_now=-3)
        soon = self.create_task(hours_from_now=5)
        later = self.create_task(hours_from_now=72)

        summary = check_task_deadlines()

        self.assertEqual(summary, {"checked": 3, "overdue": 1, "due_soon": 1, "reminded": 1})
        for task in (late, soon, later):
            self.assertEqual(self.fetch_row("tasks", task["id"])["status"], "pending")

        reminders = self.reminder_logs()
        self.assertEqual(len(reminders), 1)
        self.assertEqual(reminders[0]["task"]["id"], late["id"])
        self.assertIsNone(reminders[0]["user"])

    def test_in_progress_task_keeps_its_status(self):
        task = self.create_task(hours_from_now=-3)
        self.client.put(f"/tasks/{task['id']}/status", json={"status": "in-progress"}, headers=self.headers(self.tech))

        check_task_deadlines()

        self.assertEqual(self.fetch_row("tasks", task["id"])["status"], "in-progress")
        listed = self.client.get("/tasks", params={"status": "in-progress"}, headers=self.headers(self.admin)).json()
        self.assertEqual([t["id"] for t in listed["data"]], [task["id"]])
        self.assertEqual(listed["data"][0]["color_status"], "red")
        self.assertIn("in-progress", self.reminder_logs()[0]["description"])

    def test_reminder_is_written_once(self):
        self.create_task(hours_from_now=-3)
        check_task_deadlines()
        logs_after_first = self.count_rows("logs")

        summary = check_task_deadlines()

        self.assertEqual(summary["overdue"], 1)
        self.assertEqual(summary["reminded"], 0)
        self.assertEqual(self.count_rows("logs"), logs_after_first)
        self.assertEqual(len(self.reminder_logs()), 1)

    def test_completed_tasks_are_left_alone(self):
        task = self.create_task(hours_from_now=-3)
        self.client.put(f"/tasks/{task['id']}/status", json={"status": "completed"}, headers=self.headers(self.tech))

        summary = check_task_deadlines()

        self.assertEqual(summary["checked"], 0)
        self.assertEqual(self.fetch_row("tasks", task["id"])["status"], "completed")
        self.assertEqual(self.reminder_logs(), [])

    def test_sweep_uses_given_clock(self):
        task = self.create_task(hours_from_now=5)

        summary = check_task_deadlines(now=utc_now() + timedelta(hours=6))

        self.assertEqual(summary["overdue"], 1)
        self.assertEqual(self.fetch_row("tasks", task["id"])["status"], "pending")
        self.assertEqual(self.reminder_logs()[0]["task"]["id"], task["id"])


if __name__ == "__main__":
    unittest.main()
