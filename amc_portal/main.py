# amc_portal/main.py
import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from amc_portal import config
from amc_portal.auth import router as auth_router
from amc_portal.database import init_db
from amc_portal.equipments import router as equipment_router
from amc_portal.logs import router as logs_router
from amc_portal.reminders import init_reminders, shutdown_reminders
from amc_portal.reports import router as reports_router
from amc_portal.task_status import utc_now_iso
from amc_portal.tasks import router as tasks_router
from amc_portal.users import router as user_router

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    os.makedirs(config.UPLOAD_DIR, exist_ok=True)
    init_db(create_admin=config.APP_ENV != "production")
    if config.REMINDERS_ENABLED:
        init_reminders()
    logger.info("Environment: %s", config.APP_ENV)
    yield
    shutdown_reminders()


app = FastAPI(title="AMC Monitoring Portal API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "form")]
        fields.append(f"{'.'.join(location) or 'request'}: {error.get('msg')}")
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Invalid request. " + "; ".join(fields)},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    content = {"success": False, "message": "Internal Server Error"}
    if config.is_development():
        content["error"] = str(exc)
    return JSONResponse(status_code=500, content=content)


# Register routers
app.include_router(auth_router, prefix="/auth", tags=["Auth"])
app.include_router(user_router, prefix="/users", tags=["Users"])
app.include_router(tasks_router, tags=["Tasks"])
app.include_router(equipment_router, prefix="/equipment", tags=["Equipment"])
app.include_router(logs_router, prefix="/logs", tags=["Logs"])
app.include_router(reports_router, prefix="/reports", tags=["Reports"])


@app.get("/")
def health():
    return {
        "success": True,
        "message": "AMC Monitoring API Server is running",
        "timestamp": utc_now_iso(),
    }


# Stored task photos; the upload root is resolved per request
@app.get("/uploads/{file_path:path}", include_in_schema=False)
def uploaded_file(file_path: str):
    root = os.path.realpath(config.UPLOAD_DIR)
    target = os.path.realpath(os.path.join(root, file_path))
    if not target.startswith(root + os.sep) or not os.path.isfile(target):
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(target)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
