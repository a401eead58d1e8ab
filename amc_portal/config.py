# amc_portal/config.py
import os

from dotenv import load_dotenv

load_dotenv()

JWT_SECRET = os.getenv("JWT_SECRET", "mysecretkey")
JWT_ALGORITHM = "HS256"
JWT_EXPIRES_HOURS = int(os.getenv("JWT_EXPIRES_HOURS", "24"))

DB_PATH = os.getenv("DB_PATH", "amc_portal.db")
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
MAX_UPLOAD_BYTES = 5 * 1024 * 1024

PORT = int(os.getenv("PORT", "5000"))
APP_ENV = os.getenv("APP_ENV", os.getenv("NODE_ENV", "development"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
REMINDERS_ENABLED = os.getenv("REMINDERS_ENABLED", "true").lower() in ("1", "true", "yes")

CORS_ORIGINS = [
    "http://localhost:5173",  # React dev
    "http://127.0.0.1:5173",
    "http://localhost:3000",
]


def is_development():
    return APP_ENV == "development"
