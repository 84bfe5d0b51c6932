import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config import settings
from db import create_db_and_tables
from errors import LifecycleError
from logging_config import setup_logging
from routers import admin, auth, notifications, offers, requests

setup_logging(settings.log_level, settings.log_file or None)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.project_name)


@app.on_event("startup")
def on_startup() -> None:
    create_db_and_tables()


@app.exception_handler(LifecycleError)
async def lifecycle_error_handler(request: Request, exc: LifecycleError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/")
def read_root():
    return {"name": settings.project_name, "status": "ok"}


app.include_router(auth.router, prefix="/api/auth")
app.include_router(requests.router, prefix="/api")
app.include_router(offers.router, prefix="/api")
app.include_router(notifications.router, prefix="/api")
app.include_router(admin.router, prefix="/api")
