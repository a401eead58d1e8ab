# amc_portal/auth.py
import logging
import sqlite3

from fastapi import APIRouter, Depends, HTTPException

from amc_portal.database import get_db
from amc_portal.dependencies import authorize_route, get_current_user
from amc_portal.models import LoginIn, RegisterIn
from amc_portal.security import hash_password, token_for_user, verify_password

logger = logging.getLogger(__name__)

VALID_ROLES = ["admin", "personnel"]

router = APIRouter(dependencies=[Depends(authorize_route)])


@router.post("/login")
def login(data: LoginIn):
    if not data.username or not data.password or not data.role:
        raise HTTPException(status_code=400, detail="Please provide username, password, and role")
    if data.role not in VALID_ROLES:
        raise HTTPException(status_code=400, detail="Invalid role. Must be either admin or personnel")

    conn = get_db()
    cursor = conn.cursor()
    cursor.execute("""
        SELECT id, username, password, role, email, full_name, created_at
        FROM users WHERE username = ?
    """, (data.username,))
    user = cursor.fetchone()
    conn.close()

    if not user:
        raise HTTPException(status_code=401, detail="Invalid username or password")

    # a role mismatch is 403 whatever the password
    if user["role"] != data.role:
        logger.info("Login for %s refused: requested role %s", data.username, data.role)
        raise HTTPException(status_code=403, detail=f"Access denied. User is not a {data.role}")

    if not verify_password(data.password, user["password"]):
        raise HTTPException(status_code=401, detail="Invalid username or password")

    user_data = dict(user)
    user_data.pop("password")
    logger.info("User %s logged in as %s", user_data["username"], user_data["role"])

    return {
        "success": True,
        "message": "Login successful",
        "data": {
            "token": token_for_user(user_data),
            "user": user_data,
        },
    }


@router.post("/register", status_code=201)
def register(data: RegisterIn):
    if not all([data.username, data.password, data.email, data.full_name, data.role]):
        raise HTTPException(status_code=400, detail="Please provide all required fields")
    if data.role not in VALID_ROLES:
        raise HTTPException(status_code=400, detail="Invalid role. Must be either admin or personnel")

    conn = get_db()
    cursor = conn.cursor()
    cursor.execute("SELECT id FROM users WHERE username = ? OR email = ?", (data.username, data.email))
    if cursor.fetchone():
        conn.close()
        raise HTTPException(status_code=400, detail="Username or email already exists")

    try:
        cursor.execute("""
            INSERT INTO users (username, password, email, full_name, role)
            VALUES (?, ?, ?, ?, ?)
        """, (data.username, hash_password(data.password), data.email, data.full_name, data.role))
        conn.commit()
        user_id = cursor.lastrowid
    except sqlite3.IntegrityError:
        # another registration took the username or email after the check above
        conn.rollback()
        raise HTTPException(status_code=400, detail="Username or email already exists")
    finally:
        conn.close()

    user = {
        "id": user_id,
        "username": data.username,
        "email": data.email,
        "full_name": data.full_name,
        "role": data.role,
    }
    logger.info("Registered %s user %s", data.role, data.username)
    return {
        "success": True,
        "message": "User registered successfully",
        "data": {"token": token_for_user(user), "user": user},
    }


@router.get("/me")
def who_am_i(user=Depends(get_current_user)):
    conn = get_db()
    cursor = conn.cursor()
    cursor.execute("""
        SELECT id, username, email, full_name, role, created_at
        FROM users WHERE id = ?
    """, (user["id"],))
    result = cursor.fetchone()
    conn.close()

    if not result:
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True, "data": dict(result)}
