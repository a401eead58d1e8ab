# amc_portal/database.py
import json
import logging
import os
import sqlite3

from amc_portal import config
from amc_portal.security import hash_password

logger = logging.getLogger(__name__)

NOW_SQL = "(strftime('%Y-%m-%dT%H:%M:%S+00:00', 'now'))"

SCHEMA = [
    f"""
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT UNIQUE NOT NULL,
        password TEXT NOT NULL,
        role TEXT CHECK(role IN ('admin', 'personnel')) NOT NULL,
        email TEXT UNIQUE,
        full_name TEXT,
        created_at TEXT DEFAULT {NOW_SQL},
        updated_at TEXT DEFAULT {NOW_SQL}
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS equipment (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        model TEXT,
        serial_number TEXT UNIQUE,
        location TEXT,
        last_serviced TEXT,
        next_service TEXT,
        service_interval_days INTEGER DEFAULT 30,
        status TEXT DEFAULT 'operational'
            CHECK(status IN ('operational', 'maintenance-due', 'needs-repair', 'out-of-service')),
        notes TEXT,
        service_history TEXT,
        created_at TEXT DEFAULT {NOW_SQL},
        updated_at TEXT DEFAULT {NOW_SQL}
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS tasks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        description TEXT,
        category TEXT NOT NULL CHECK(category IN ('daily', 'weekly', 'monthly')),
        status TEXT DEFAULT 'pending'
            CHECK(status IN ('pending', 'in-progress', 'completed', 'overdue')),
        priority TEXT DEFAULT 'medium' CHECK(priority IN ('low', 'medium', 'high')),
        assigned_to INTEGER,
        assigned_by INTEGER,
        equipment_id INTEGER,
        benchmark_time TEXT,
        actual_time TEXT,
        photo_path TEXT,
        remarks TEXT,
        created_at TEXT DEFAULT {NOW_SQL},
        updated_at TEXT DEFAULT {NOW_SQL},
        FOREIGN KEY (assigned_to) REFERENCES users(id) ON DELETE SET NULL,
        FOREIGN KEY (assigned_by) REFERENCES users(id) ON DELETE SET NULL,
        FOREIGN KEY (equipment_id) REFERENCES equipment(id) ON DELETE SET NULL
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        task_id INTEGER NOT NULL,
        user_id INTEGER,
        action TEXT NOT NULL,
        description TEXT,
        old_value TEXT,
        new_value TEXT,
        created_at TEXT DEFAULT {NOW_SQL},
        FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE,
        FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE SET NULL
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS service_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        equipment_id INTEGER NOT NULL,
        service_date TEXT NOT NULL,
        service_type TEXT NOT NULL,
        description TEXT,
        technician_id INTEGER,
        next_service_date TEXT,
        cost REAL,
        invoice_number TEXT,
        created_at TEXT DEFAULT {NOW_SQL},
        FOREIGN KEY (equipment_id) REFERENCES equipment(id) ON DELETE CASCADE,
        FOREIGN KEY (technician_id) REFERENCES users(id) ON DELETE SET NULL
    )
    """,
]


def get_db():
    """
    Open a connection to the portal database.

    Rows come back as sqlite3.Row and foreign keys are enforced, so
    ON DELETE rules in the schema apply.
    """
    conn = sqlite3.connect(config.DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def rows_to_dicts(rows):
    return [dict(row) for row in rows]


def dumps_or_none(value):
    return json.dumps(value) if value is not None else None


def loads_or_none(value):
    if value is None or value == "":
        return None
    try:
        return json.loads(value)
    except ValueError:
        # plain text written before values were JSON-encoded
        return value


def init_db(create_admin=True):
    directory = os.path.dirname(os.path.abspath(config.DB_PATH))
    os.makedirs(directory, exist_ok=True)

    conn = get_db()
    try:
        cursor = conn.cursor()
        for statement in SCHEMA:
            cursor.execute(statement)
        conn.commit()
        logger.info("Database ready at %s", os.path.abspath(config.DB_PATH))
        if create_admin:
            create_default_admin(conn)
    finally:
        conn.close()


def create_default_admin(conn):
    cursor = conn.cursor()
    cursor.execute("SELECT id FROM users WHERE username = ?", ("admin",))
    if cursor.fetchone():
        return
    cursor.execute("""
        INSERT INTO users (username, password, role, email, full_name)
        VALUES (?, ?, ?, ?, ?)
    """, ("admin", hash_password("admin123"), "admin", "admin@example.com", "System Administrator"))
    conn.commit()
    logger.warning("Default admin user created; change its password before going live")


def insert_user(conn, username, password, role, email=None, full_name=None):
    """Hash the password and insert a user row. Returns the new id."""
    cursor = conn.cursor()
    cursor.execute("""
        INSERT INTO users (username, password, role, email, full_name)
        VALUES (?, ?, ?, ?, ?)
    """, (username, hash_password(password), role, email, full_name))
    conn.commit()
    return cursor.lastrowid


def write_log(conn, task_id, user_id, action, description=None, old_value=None, new_value=None):
    """Append an audit row and return its id. The caller commits."""
    cursor = conn.execute("""
        INSERT INTO logs (task_id, user_id, action, description, old_value, new_value)
        VALUES (?, ?, ?, ?, ?, ?)
    """, (task_id, user_id, action, description, dumps_or_none(old_value), dumps_or_none(new_value)))
    return cursor.lastrowid
