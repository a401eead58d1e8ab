# amc_portal/security.py
from datetime import datetime, timedelta, timezone

from jose import jwt
from passlib.context import CryptContext

from amc_portal import config

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password):
    return pwd_context.hash(password)


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_hours: int = None):
    to_encode = data.copy()
    hours = expires_hours if expires_hours is not None else config.JWT_EXPIRES_HOURS
    expire = datetime.now(timezone.utc) + timedelta(hours=hours)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def token_for_user(user: dict):
    return create_access_token({
        "sub": user["username"],
        "userId": user["id"],
        "role": user["role"],
        "username": user["username"],
    })


def decode_token(token: str):
    """Raises jose.JWTError (ExpiredSignatureError when expired)."""
    return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
