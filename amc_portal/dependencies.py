# amc_portal/dependencies.py
import logging
import re

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError

from amc_portal.database import get_db
from amc_portal.security import decode_token

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)

ADMIN = ("admin",)
PERSONNEL = ("personnel",)
ANY_ROLE = ("admin", "personnel")

# (method, route template) -> roles allowed; anything not listed is public
ROUTE_ROLES = {
    ("POST", "/auth/register"): ADMIN,
    ("GET", "/auth/me"): ANY_ROLE,

    ("GET", "/users"): ADMIN,
    ("GET", "/users/{user_id}"): ADMIN,
    ("DELETE", "/users/{user_id}"): ADMIN,

    ("GET", "/tasks"): ANY_ROLE,
    ("POST", "/tasks"): ADMIN,
    ("GET", "/tasks/{category}"): ANY_ROLE,
    ("GET", "/user-tasks"): PERSONNEL,
    ("POST", "/tasks/{task_id}/update"): ANY_ROLE,
    ("PUT", "/tasks/{task_id}/status"): PERSONNEL,

    ("GET", "/equipment"): ANY_ROLE,
    ("POST", "/equipment"): ANY_ROLE,
    ("GET", "/equipment/{equipment_id}"): ANY_ROLE,
    ("PUT", "/equipment/{equipment_id}"): ANY_ROLE,
    ("DELETE", "/equipment/{equipment_id}"): ADMIN,
    ("GET", "/equipment/{equipment_id}/history"): ANY_ROLE,
    ("POST", "/equipment/{equipment_id}/history"): ADMIN,

    ("GET", "/logs"): ANY_ROLE,
    ("POST", "/logs"): ANY_ROLE,

    ("GET", "/reports/compliance"): ADMIN,
    ("GET", "/reports/compliance/chart"): ADMIN,
}


def _compile(template):
    parts = [
        r"[^/]+" if part.startswith("{") and part.endswith("}") else re.escape(part)
        for part in template.split("/")
    ]
    return re.compile("^" + "/".join(parts) + "$")


ROUTE_PATTERNS = [(method, _compile(template), roles) for (method, template), roles in ROUTE_ROLES.items()]


def roles_for(method: str, path: str):
    """Roles allowed on a request path (or route template), or None when it is public."""
    method = method.upper()
    if len(path) > 1:
        path = path.rstrip("/")
    roles = ROUTE_ROLES.get((method, path))
    if roles is not None:
        return roles
    for route_method, pattern, allowed in ROUTE_PATTERNS:
        if route_method == method and pattern.match(path):
            return allowed
    return None


def _credentials_exception(detail):
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(request: Request, token: str = Depends(oauth2_scheme)):
    cached = getattr(request.state, "user", None)
    if cached is not None:
        return cached

    if not token:
        raise _credentials_exception("Authentication required. No token provided.")
    try:
        payload = decode_token(token)
    except ExpiredSignatureError:
        raise _credentials_exception("Session expired. Please log in again.")
    except JWTError:
        logger.info("Rejected invalid token on %s %s", request.method, request.url.path)
        raise _credentials_exception("Invalid token. Please authenticate.")

    user_id = payload.get("userId")
    if user_id is None:
        raise _credentials_exception("Invalid token. Please authenticate.")

    conn = get_db()
    cursor = conn.cursor()
    cursor.execute("SELECT id, username, role, email, full_name FROM users WHERE id = ?", (user_id,))
    row = cursor.fetchone()
    conn.close()

    # the account may have been deleted after the token was issued
    if not row:
        raise _credentials_exception("User not found. Please log in again.")

    user = dict(row)
    request.state.user = user
    return user


def authorize_route(request: Request, token: str = Depends(oauth2_scheme)):
    """Router-level guard that looks the request path up in ROUTE_ROLES."""
    path = request.url.path
    roles = roles_for(request.method, path)
    if roles is None:
        return None

    user = get_current_user(request, token)
    if user["role"] not in roles:
        logger.info("User %s (%s) denied %s %s", user["username"], user["role"], request.method, path)
        raise HTTPException(status_code=403, detail="You do not have permission to access this resource.")
    return user
