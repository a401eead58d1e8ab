# amc_portal/logs.py
from fastapi import APIRouter, Depends, HTTPException, Query

from amc_portal.database import get_db, loads_or_none, write_log
from amc_portal.dependencies import authorize_route, get_current_user
from amc_portal.models import LogIn

router = APIRouter(dependencies=[Depends(authorize_route)])

# written only by the task routes and the reminder sweep
SYSTEM_ACTIONS = {"task_created", "status_updated", "marked_overdue", "overdue_reminder"}

LOG_SELECT = """
    SELECT
        l.id, l.task_id, t.title AS task_title,
        l.user_id, u.username AS user_name,
        l.action, l.description, l.old_value, l.new_value, l.created_at
    FROM logs l
    LEFT JOIN tasks t ON l.task_id = t.id
    LEFT JOIN users u ON l.user_id = u.id
"""


def format_log(row):
    return {
        "id": row["id"],
        "task": {"id": row["task_id"], "title": row["task_title"]},
        "user": {"id": row["user_id"], "username": row["user_name"]} if row["user_id"] else None,
        "action": row["action"],
        "description": row["description"],
        "old_value": loads_or_none(row["old_value"]),
        "new_value": loads_or_none(row["new_value"]),
        "timestamp": row["created_at"],
    }


# --- Most recent audit entries ---
@router.get("")
def recent_logs(limit: int = Query(10, ge=1, le=100)):
    conn = get_db()
    cursor = conn.cursor()
    cursor.execute(LOG_SELECT + " ORDER BY l.created_at DESC, l.id DESC LIMIT ?", (limit,))
    logs = [format_log(row) for row in cursor.fetchall()]
    conn.close()
    return {"success": True, "count": len(logs), "data": logs}


@router.post("", status_code=201)
def add_log(data: LogIn, user=Depends(get_current_user)):
    action = data.action.strip()
    if not action:
        raise HTTPException(status_code=400, detail="Action is required")
    if action in SYSTEM_ACTIONS:
        raise HTTPException(status_code=400, detail=f"Action '{action}' is recorded by the system")

    conn = get_db()
    cursor = conn.cursor()
    try:
        cursor.execute("SELECT id, assigned_to FROM tasks WHERE id = ?", (data.task_id,))
        task = cursor.fetchone()
        if not task:
            raise HTTPException(status_code=404, detail="Task not found")
        if user["role"] != "admin" and task["assigned_to"] != user["id"]:
            raise HTTPException(status_code=403, detail="You are not authorized to log against this task")

        log_id = write_log(conn, data.task_id, user["id"], action, data.description,
                           data.old_value, data.new_value)
        conn.commit()
        cursor.execute(LOG_SELECT + " WHERE l.id = ?", (log_id,))
        log = format_log(cursor.fetchone())
    finally:
        conn.close()

    return {"success": True, "message": "Log entry added", "data": log}
