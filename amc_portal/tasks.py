# amc_portal/tasks.py
import logging
import os
import re
import time
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile

from amc_portal import config
from amc_portal.database import get_db, write_log
from amc_portal.dependencies import authorize_route, get_current_user
from amc_portal.models import TaskIn, TaskStatusIn
from amc_portal.task_status import (
    UPDATE_STATUSES,
    VALID_CATEGORIES,
    VALID_PRIORITIES,
    VALID_STATUSES,
    compute_color_status,
    is_overdue,
    to_iso,
    utc_now,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(authorize_route)])

ALLOWED_PHOTO_EXTENSIONS = {".jpg", ".jpeg", ".png"}
ALLOWED_PHOTO_TYPES = {"image/jpeg", "image/jpg", "image/png"}

TASK_SELECT = """
    SELECT
        t.id, t.title, t.description, t.category, t.status, t.priority,
        t.assigned_to, u.username AS assigned_to_username, u.full_name AS assigned_to_name,
        t.assigned_by, t.equipment_id, e.name AS equipment_name,
        t.benchmark_time, t.actual_time, t.photo_path, t.remarks,
        t.created_at, t.updated_at,
        (SELECT COUNT(*) FROM logs WHERE task_id = t.id) AS log_count
    FROM tasks t
    LEFT JOIN users u ON t.assigned_to = u.id
    LEFT JOIN equipment e ON t.equipment_id = e.id
"""


def serialize_task(row, now=None):
    task = dict(row)
    task["color_status"] = compute_color_status(
        task["status"], task["benchmark_time"], task.get("actual_time"), now
    )
    return task


def fetch_task(cursor, task_id):
    cursor.execute(TASK_SELECT + " WHERE t.id = ?", (task_id,))
    row = cursor.fetchone()
    return serialize_task(row) if row else None


def _list_tasks(user, category=None, status=None, assigned_to=None):
    query = TASK_SELECT + " WHERE 1=1"
    params = []

    if category:
        query += " AND t.category = ?"
        params.append(category)
    if status:
        query += " AND t.status = ?"
        params.append(status)
    if assigned_to is not None:
        query += " AND t.assigned_to = ?"
        params.append(assigned_to)

    # Personnel only ever see their own work
    if user["role"] == "personnel":
        query += " AND t.assigned_to = ?"
        params.append(user["id"])

    query += " ORDER BY t.created_at DESC, t.id DESC"

    conn = get_db()
    cursor = conn.cursor()
    cursor.execute(query, params)
    rows = cursor.fetchall()
    conn.close()

    now = utc_now()
    return [serialize_task(row, now) for row in rows]


@router.get("/tasks")
def list_tasks(
    status: Optional[str] = Query(None),
    assigned_to: Optional[int] = Query(None),
    user=Depends(get_current_user),
):
    if status and status not in VALID_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")
    tasks = _list_tasks(user, status=status, assigned_to=assigned_to)
    return {"success": True, "count": len(tasks), "data": tasks}


@router.post("/tasks", status_code=201)
def create_task(data: TaskIn, user=Depends(get_current_user)):
    if not data.title.strip():
        raise HTTPException(status_code=400, detail="Please provide title, category, assigned_to, and benchmark_time")
    if data.category not in VALID_CATEGORIES:
        raise HTTPException(status_code=400, detail=f"Invalid category. Must be one of: {', '.join(VALID_CATEGORIES)}")
    if data.priority not in VALID_PRIORITIES:
        raise HTTPException(status_code=400, detail=f"Invalid priority. Must be one of: {', '.join(VALID_PRIORITIES)}")

    conn = get_db()
    cursor = conn.cursor()
    try:
        cursor.execute("SELECT id FROM users WHERE id = ?", (data.assigned_to,))
        if not cursor.fetchone():
            raise HTTPException(status_code=400, detail="Assigned user not found")

        if data.equipment_id is not None:
            cursor.execute("SELECT id FROM equipment WHERE id = ?", (data.equipment_id,))
            if not cursor.fetchone():
                raise HTTPException(status_code=400, detail="Equipment not found")

        cursor.execute("""
            INSERT INTO tasks (title, description, category, status, priority,
                               assigned_to, assigned_by, equipment_id, benchmark_time)
            VALUES (?, ?, ?, 'pending', ?, ?, ?, ?, ?)
        """, (
            data.title, data.description, data.category, data.priority,
            data.assigned_to, user["id"], data.equipment_id, to_iso(data.benchmark_time),
        ))
        task_id = cursor.lastrowid
        write_log(conn, task_id, user["id"], "task_created",
                  f"Task assigned to user {data.assigned_to}", new_value={"status": "pending"})
        conn.commit()

        task = fetch_task(cursor, task_id)
    finally:
        conn.close()

    logger.info("Task %s '%s' created by %s", task_id, data.title, user["username"])
    return {"success": True, "message": "Task created successfully", "data": task}


@router.get("/user-tasks")
def user_tasks(user=Depends(get_current_user)):
    now = utc_now()
    tasks = _list_tasks(user)
    for task in tasks:
        task["task_status"] = "overdue" if is_overdue(task["status"], task["benchmark_time"], now) else "ontime"

    def sort_key(task):
        if task["task_status"] == "overdue":
            group = 0
        elif task["status"] == "pending":
            group = 1
        else:
            group = 2
        return group, task["benchmark_time"] or ""

    tasks.sort(key=sort_key)

    completed = len([t for t in tasks if t["status"] == "completed"])
    return {
        "success": True,
        "count": len(tasks),
        "statistics": {
            "total": len(tasks),
            "completed": completed,
            "pending": len(tasks) - completed,
            "overdue": len([t for t in tasks if t["task_status"] == "overdue"]),
        },
        "data": tasks,
    }


@router.get("/tasks/{category}")
def tasks_by_category(category: str, user=Depends(get_current_user)):
    if category not in VALID_CATEGORIES:
        raise HTTPException(status_code=400, detail=f"Invalid category. Must be one of: {', '.join(VALID_CATEGORIES)}")
    tasks = _list_tasks(user, category=category)
    return {"success": True, "count": len(tasks), "data": tasks}


def _validate_photo(photo: Optional[UploadFile]):
    if photo is None or not photo.filename:
        raise HTTPException(status_code=400, detail="Photo is required")

    extension = os.path.splitext(photo.filename)[1].lower()
    if extension not in ALLOWED_PHOTO_EXTENSIONS or (photo.content_type or "").lower() not in ALLOWED_PHOTO_TYPES:
        raise HTTPException(status_code=400, detail="Only JPEG and PNG images are allowed")

    content = photo.file.read(config.MAX_UPLOAD_BYTES + 1)
    if len(content) > config.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail="File size too large. Maximum 5MB allowed.")
    if not content:
        raise HTTPException(status_code=400, detail="Photo is empty")
    return content


def _store_photo(filename, content):
    upload_dir = os.path.join(config.UPLOAD_DIR, "tasks")
    os.makedirs(upload_dir, exist_ok=True)
    safe_name = re.sub(r"[^\w.]", "-", os.path.basename(filename))
    stored_name = f"{int(time.time() * 1000)}-{safe_name}"
    path = os.path.join(upload_dir, stored_name)
    with open(path, "wb") as f:
        f.write(content)
    return path, f"/uploads/tasks/{stored_name}"


def _discard(path):
    if path and os.path.exists(path):
        os.remove(path)


@router.post("/tasks/{task_id}/update")
def update_task(
    task_id: int,
    status: Optional[str] = Form(None),
    remarks: Optional[str] = Form(None),
    photo: Optional[UploadFile] = File(None),
    user=Depends(get_current_user),
):
    if not status:
        raise HTTPException(status_code=400, detail="Status is required")
    if status not in UPDATE_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status. Must be one of: {', '.join(UPDATE_STATUSES)}")
    content = _validate_photo(photo)

    file_path, public_path = _store_photo(photo.filename, content)
    conn = get_db()
    cursor = conn.cursor()
    try:
        cursor.execute("SELECT id, status, assigned_to FROM tasks WHERE id = ?", (task_id,))
        task = cursor.fetchone()
        if not task:
            raise HTTPException(status_code=404, detail="Task not found")
        if user["role"] != "admin" and task["assigned_to"] != user["id"]:
            raise HTTPException(status_code=403, detail="You are not authorized to update this task")

        now = utc_now_iso()
        cursor.execute("""
            UPDATE tasks
            SET status = ?, remarks = ?, photo_path = ?, actual_time = ?, updated_at = ?
            WHERE id = ?
        """, (status, remarks, public_path, now if status == "completed" else None, now, task_id))
        write_log(conn, task_id, user["id"], "status_updated", f"Status changed to {status}",
                  old_value=task["status"], new_value=status)
        conn.commit()

        updated = fetch_task(cursor, task_id)
    except Exception:
        _discard(file_path)
        raise
    finally:
        conn.close()

    logger.info("Task %s set to %s by %s", task_id, status, user["username"])
    return {"success": True, "message": "Task updated successfully", "data": updated}


@router.put("/tasks/{task_id}/status")
def set_task_status(task_id: int, data: TaskStatusIn, user=Depends(get_current_user)):
    if data.status not in VALID_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")

    conn = get_db()
    cursor = conn.cursor()
    try:
        cursor.execute("SELECT id, status, assigned_to, actual_time FROM tasks WHERE id = ?", (task_id,))
        task = cursor.fetchone()
        if not task:
            raise HTTPException(status_code=404, detail="Task not found")
        if task["assigned_to"] != user["id"]:
            raise HTTPException(status_code=403, detail="You are not authorized to update this task")

        now = utc_now_iso()
        actual_time = (task["actual_time"] or now) if data.status == "completed" else None
        cursor.execute("""
            UPDATE tasks SET status = ?, actual_time = ?, updated_at = ? WHERE id = ?
        """, (data.status, actual_time, now, task_id))
        write_log(conn, task_id, user["id"], "status_updated", f"Status changed to {data.status}",
                  old_value=task["status"], new_value=data.status)
        conn.commit()

        updated = fetch_task(cursor, task_id)
    finally:
        conn.close()

    return {"success": True, "message": "Task status updated", "data": updated}
