import asyncio
from contextlib import suppress
from datetime import datetime, timezone
import logging
import time
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from staffcheck.db import engine
from staffcheck.errors import ApiError, error_response
from staffcheck.logging_utils import setup_json_logging
from staffcheck.routers import admin, attendance, auth
from staffcheck.services.notifications import run_notification_cleanup
from staffcheck.services.schema_guard import SchemaGuardResult, verify_runtime_schema
from staffcheck.settings import get_cors_origins, get_settings, is_push_enabled

setup_json_logging()
logger = logging.getLogger("staffcheck.request")
maintenance_logger = logging.getLogger("staffcheck.maintenance")
settings = get_settings()

HTTP_ERROR_CODES = {
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    429: "TOO_MANY_ATTEMPTS",
}

app = FastAPI(title=settings.app_name, version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or str(uuid4())
    request.state.request_id = request_id
    request.state.actor = getattr(request.state, "actor", "system")
    request.state.actor_id = getattr(request.state, "actor_id", "system")

    start = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["X-Request-Id"] = request_id
        return response
    finally:
        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        logger.info(
            "request_complete",
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": status_code,
                "latency_ms": latency_ms,
                "actor": getattr(request.state, "actor", "system"),
                "actor_id": getattr(request.state, "actor_id", "system"),
            },
        )


@app.exception_handler(ApiError)
async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    return error_response(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
    )


@app.exception_handler(HTTPException)
async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    status_code = exc.status_code
    code = HTTP_ERROR_CODES.get(status_code, "HTTP_ERROR")
    message = str(exc.detail) if exc.detail else "Request failed."
    return error_response(
        request,
        status_code=status_code,
        code=code,
        message=message,
    )


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(
        request,
        status_code=422,
        code="VALIDATION_ERROR",
        message=str(exc.errors()),
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled_error",
        extra={
            "request_id": getattr(request.state, "request_id", "unknown"),
            "path": request.url.path,
            "method": request.method,
        },
    )
    return error_response(
        request,
        status_code=500,
        code="INTERNAL_ERROR",
        message="Unexpected server error.",
    )


app.include_router(auth.router)
app.include_router(attendance.router)
app.include_router(admin.router)


def _default_schema_guard_result() -> SchemaGuardResult:
    return SchemaGuardResult(
        ok=False,
        checked_at_utc=datetime.now(timezone.utc),
        issues=["SCHEMA_GUARD_NOT_RUN"],
        warnings=[],
    )


async def _maintenance_worker_loop(stop_event: asyncio.Event) -> None:
    interval_seconds = max(60, int(settings.maintenance_interval_seconds))
    while not stop_event.is_set():
        try:
            deleted = await asyncio.to_thread(run_notification_cleanup)
        except Exception:
            maintenance_logger.exception("maintenance_worker_tick_failed")
        else:
            if deleted:
                maintenance_logger.info("maintenance_worker_tick", extra={"deleted_notifications": deleted})

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            continue


@app.on_event("startup")
async def run_schema_guard() -> None:
    result = await asyncio.to_thread(verify_runtime_schema, engine)
    app.state.schema_guard_result = result
    if result.ok:
        maintenance_logger.info("schema_guard_ok", extra=result.to_dict())
        return

    maintenance_logger.error("schema_guard_failed", extra=result.to_dict())
    if settings.schema_guard_strict:
        joined_issues = "; ".join(result.issues)
        raise RuntimeError(f"Runtime schema guard failed: {joined_issues}")


@app.on_event("startup")
async def start_maintenance_worker() -> None:
    if not settings.maintenance_worker_enabled:
        return
    if getattr(app.state, "maintenance_worker_task", None) is not None:
        return

    stop_event = asyncio.Event()
    task = asyncio.create_task(_maintenance_worker_loop(stop_event))
    app.state.maintenance_worker_stop_event = stop_event
    app.state.maintenance_worker_task = task
    if not is_push_enabled():
        maintenance_logger.warning("push_channel_not_configured")
    maintenance_logger.info(
        "maintenance_worker_started",
        extra={
            "interval_seconds": max(60, int(settings.maintenance_interval_seconds)),
            "retention_days": settings.notification_retention_days,
        },
    )


@app.on_event("shutdown")
async def stop_maintenance_worker() -> None:
    stop_event: asyncio.Event | None = getattr(app.state, "maintenance_worker_stop_event", None)
    task: asyncio.Task[None] | None = getattr(app.state, "maintenance_worker_task", None)
    if stop_event is not None:
        stop_event.set()
    if task is not None:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
    app.state.maintenance_worker_stop_event = None
    app.state.maintenance_worker_task = None


@app.get("/health")
def health() -> dict[str, Any]:
    schema_guard_result: SchemaGuardResult = getattr(app.state, "schema_guard_result", _default_schema_guard_result())
    return {
        "status": "ok",
        "schema_guard": schema_guard_result.to_dict(),
        "push_enabled": is_push_enabled(),
    }


app.mount("/media", StaticFiles(directory=settings.media_dir, check_dir=False), name="media")
