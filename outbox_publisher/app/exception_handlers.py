"""Problem Details (RFC 7807) responses for every error the API returns."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from outbox_publisher.core.exceptions import AppException
from outbox_publisher.core.schemas.problem_details import (
    ProblemDetails,
    ValidationErrorItem,
    ValidationProblemDetails,
)
from outbox_publisher.infra.metrics import tracking

logger = logging.getLogger(__name__)

PROBLEM_JSON = "application/problem+json"


def _endpoint(request: Request) -> str:
    """Route template for metric labels, so entry ids do not become label values."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


def _problem_response(problem: ProblemDetails, extra: dict[str, Any] | None = None) -> JSONResponse:
    body = problem.model_dump(mode="json", exclude_none=True)
    if extra:
        body.update(extra)
    return JSONResponse(status_code=problem.status, content=body, media_type=PROBLEM_JSON)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    tracking.track_error(error_type=exc.type, endpoint=_endpoint(request), status_code=exc.status_code)
    logger.warning(
        exc.detail,
        extra={
            "path": request.url.path,
            "method": request.method,
            "problem_type": exc.type,
            "status_code": exc.status_code,
            **exc.extra,
        },
    )
    problem = ProblemDetails(
        type=exc.type,
        title=exc.title,
        status=exc.status_code,
        detail=exc.detail,
        instance=exc.instance or request.url.path,
    )
    return _problem_response(problem, exc.extra)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 with one item per invalid field, e.g. ``query.limit`` or ``path.entry_id``."""
    errors = [
        ValidationErrorItem(
            field=".".join(str(part) for part in error["loc"]),
            message=error["msg"],
            type=error["type"],
            value=error.get("input"),
        )
        for error in exc.errors()
    ]
    tracking.track_error(error_type="validation-error", endpoint=_endpoint(request), status_code=422)
    logger.info(
        "Request validation failed",
        extra={"path": request.url.path, "method": request.method, "fields": [e.field for e in errors]},
    )
    problem = ValidationProblemDetails(
        type="validation-error",
        title="Validation Error",
        status=422,
        detail=f"Request validation failed for {len(errors)} field(s)",
        instance=request.url.path,
        errors=errors,
    )
    return _problem_response(problem)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """500 without internal details; the traceback only goes to the log."""
    tracking.track_unhandled_exception(exception_type=type(exc).__name__, endpoint=_endpoint(request))
    logger.error(
        "Unhandled exception",
        extra={"path": request.url.path, "method": request.method, "exception_type": type(exc).__name__},
        exc_info=exc,
    )
    problem = ProblemDetails(
        type="internal-error",
        title="Internal Server Error",
        status=500,
        detail="An unexpected error occurred while processing your request",
        instance=request.url.path,
    )
    return _problem_response(problem)


def configure_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
