# amc_portal/users.py
import logging

from fastapi import APIRouter, Depends, HTTPException

from amc_portal.database import get_db, rows_to_dicts
from amc_portal.dependencies import authorize_route, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(authorize_route)])

USER_COLUMNS = "id, username, email, full_name, role, created_at, updated_at"


# --- List all users (admin only) ---
@router.get("")
def list_users():
    conn = get_db()
    cursor = conn.cursor()
    cursor.execute(f"SELECT {USER_COLUMNS} FROM users ORDER BY id")
    users = rows_to_dicts(cursor.fetchall())
    conn.close()
    return {"success": True, "count": len(users), "data": users}


@router.get("/{user_id}")
def get_user(user_id: int):
    conn = get_db()
    cursor = conn.cursor()
    cursor.execute(f"SELECT {USER_COLUMNS} FROM users WHERE id = ?", (user_id,))
    row = cursor.fetchone()
    conn.close()

    if not row:
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True, "data": dict(row)}


# --- Delete user by ID (admin only); their tasks stay with a NULL assignee ---
@router.delete("/{user_id}")
def delete_user(user_id: int, user=Depends(get_current_user)):
    if user_id == user["id"]:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")

    conn = get_db()
    cursor = conn.cursor()
    cursor.execute("DELETE FROM users WHERE id = ?", (user_id,))
    conn.commit()
    deleted = cursor.rowcount
    conn.close()

    if deleted == 0:
        raise HTTPException(status_code=404, detail="User not found")
    logger.info("User %s deleted by %s", user_id, user["username"])
    return {"success": True, "message": f"User {user_id} deleted"}
