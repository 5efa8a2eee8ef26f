import logging
import time
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from attendance_admin.db import engine
from attendance_admin.errors import ApiError, BatchCommitError, DocumentNotFoundError, error_response
from attendance_admin.logging_utils import setup_json_logging
from attendance_admin.routers import admin, triggers
from attendance_admin.settings import get_cors_origins, get_settings
from attendance_admin.store import create_schema

settings = get_settings()
setup_json_logging(settings.log_level)
logger = logging.getLogger("attendance_admin.request")

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
    request.state.actor = (request.headers.get("X-Actor") or "").strip() or "system"

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
                "actor": request.state.actor,
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


@app.exception_handler(DocumentNotFoundError)
async def handle_document_not_found(request: Request, exc: DocumentNotFoundError) -> JSONResponse:
    logger.warning(
        "document_not_found",
        extra={"request_id": getattr(request.state, "request_id", "unknown"), "document_path": exc.path},
    )
    return error_response(
        request,
        status_code=404,
        code="DOCUMENT_NOT_FOUND",
        message=str(exc),
    )


@app.exception_handler(BatchCommitError)
async def handle_batch_commit_error(request: Request, exc: BatchCommitError) -> JSONResponse:
    return error_response(
        request,
        status_code=409,
        code="BATCH_COMMIT_FAILED",
        message=str(exc),
    )


@app.exception_handler(HTTPException)
async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    code_map = {
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
    }
    message = str(exc.detail) if exc.detail else "Request failed."
    return error_response(
        request,
        status_code=exc.status_code,
        code=code_map.get(exc.status_code, "HTTP_ERROR"),
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


app.include_router(admin.router)
app.include_router(triggers.router)


@app.on_event("startup")
def prepare_document_store() -> None:
    backend = settings.document_store_backend.strip().lower()
    if backend == "memory":
        logger.info("document_store_ready", extra={"backend": backend})
        return
    create_schema(engine)
    logger.info("document_store_ready", extra={"backend": backend})


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "document_store_backend": settings.document_store_backend,
    }
