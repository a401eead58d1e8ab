# amc_portal/reminders.py
"""
Hourly reminder sweep.

Open tasks whose benchmark time has passed get one ``overdue_reminder``
audit row (the first time the sweep sees them late) and every run reports
them through the log, as it does for tasks due within the next 24 hours.
The sweep never writes to the tasks table: status belongs to the people
working the task and colours are derived on read.
"""
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from amc_portal.database import get_db, write_log
from amc_portal.task_status import DUE_SOON_WINDOW, parse_timestamp, utc_now

logger = logging.getLogger(__name__)

REMINDER_ACTION = "overdue_reminder"

scheduler = None


def check_task_deadlines(now=None):
    now = parse_timestamp(now) if now is not None else utc_now()
    summary = {"checked": 0, "overdue": 0, "due_soon": 0, "reminded": 0}

    conn = get_db()
    try:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT t.id, t.title, t.status, t.benchmark_time,
                   EXISTS (SELECT 1 FROM logs l WHERE l.task_id = t.id AND l.action = ?) AS reminded
            FROM tasks t
            WHERE t.status != 'completed' AND t.benchmark_time IS NOT NULL
        """, (REMINDER_ACTION,))
        tasks = cursor.fetchall()

        for task in tasks:
            summary["checked"] += 1
            try:
                benchmark = parse_timestamp(task["benchmark_time"])
                if benchmark <= now:
                    summary["overdue"] += 1
                    logger.info('Task "%s" is OVERDUE (was due at %s)', task["title"], benchmark.isoformat())
                    if not task["reminded"]:
                        write_log(conn, task["id"], None, REMINDER_ACTION,
                                  f"Benchmark {benchmark.isoformat()} passed while {task['status']}")
                        conn.commit()
                        summary["reminded"] += 1
                elif benchmark - now <= DUE_SOON_WINDOW:
                    summary["due_soon"] += 1
                    hours = (benchmark - now).total_seconds() / 3600
                    logger.info('Task "%s" is due in %.1f hours (%s)', task["title"], hours, benchmark.isoformat())
            except Exception:
                conn.rollback()
                logger.exception("Error processing task %s", task["id"])
    finally:
        conn.close()

    logger.info("Checked %d open tasks for reminders", summary["checked"])
    return summary


def _run_sweep():
    logger.info("Running scheduled deadline check...")
    try:
        check_task_deadlines()
    except Exception:
        logger.exception("Deadline check failed")


def init_reminders():
    """Start the hourly sweep (minute 0, UTC) and run it once right away."""
    global scheduler
    if scheduler is not None and scheduler.running:
        return scheduler

    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        _run_sweep,
        CronTrigger(minute=0, timezone="UTC"),
        id="task_deadline_sweep",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Task reminder system initialized")

    _run_sweep()
    return scheduler


def shutdown_reminders():
    global scheduler
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
    scheduler = None
