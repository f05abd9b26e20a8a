from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import models
from .config import settings
from .database import db_session, engine
from .errors import ServiceError
from .logging_config import configure_logging
from .middleware import RequestLoggingMiddleware
from .routers import admin, auth, client, notifications, technician
from .services.reports import seed_report_templates
from .services.storage import FILES_MOUNT

configure_logging()
logger = logging.getLogger(__name__)

models.Base.metadata.create_all(bind=engine)

with db_session() as session:
    seed_report_templates(session)

app = FastAPI(title=settings.app_name)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _envelope(status_code: int, message: str, error: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "data": None, "message": message, "error": error},
    )


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return _envelope(exc.status_code, exc.message, exc.error)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _envelope(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = jsonable_encoder(exc.errors())
    fields = ", ".join(".".join(str(part) for part in error.get("loc", ()) if part != "body") for error in errors)
    return _envelope(status.HTTP_400_BAD_REQUEST, "Missing or invalid fields", fields or None)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "Unexpected server error", str(exc))


app.include_router(auth.router)
app.include_router(admin.router)
app.include_router(technician.router)
app.include_router(client.router)
app.include_router(notifications.router)
app.mount(FILES_MOUNT, StaticFiles(directory=str(settings.storage_dir)), name="files")


@app.get("/")
def index() -> dict[str, str]:
    return {"name": settings.app_name, "status": "running"}


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}
