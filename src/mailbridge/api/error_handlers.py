"""Global error handlers rendering Problem Details."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mailbridge.api.exceptions import APIError, ProblemDetail, problem_for
from mailbridge.core.exceptions import MailBridgeError

logger = structlog.get_logger(__name__)

PROBLEM_JSON = "application/problem+json"


def _problem_response(problem: ProblemDetail) -> JSONResponse:
    return JSONResponse(
        status_code=problem.status,
        content=problem.to_dict(),
        media_type=PROBLEM_JSON,
    )


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Handle custom API errors with Problem Details response."""
    await logger.awarning(
        "api_error",
        error_type=exc.problem.type,
        status=exc.problem.status,
        detail=exc.problem.detail,
        path=str(request.url.path),
    )
    return _problem_response(exc.problem)


async def domain_error_handler(request: Request, exc: MailBridgeError) -> JSONResponse:
    """Map mailbridge errors onto HTTP statuses."""
    problem = problem_for(exc)
    await logger.awarning(
        "domain_error",
        exc_type=type(exc).__name__,
        status=problem.status,
        provider=exc.provider,
        detail=exc.message,
        path=str(request.url.path),
    )
    return _problem_response(problem)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle Starlette HTTP exceptions with Problem Details response."""
    detail = exc.detail if isinstance(exc.detail, str) else None
    await logger.awarning(
        "http_error",
        status=exc.status_code,
        detail=exc.detail,
        path=str(request.url.path),
    )
    return _problem_response(
        ProblemDetail(
            type="/errors/http",
            title=detail or "HTTP Error",
            status=exc.status_code,
            detail=detail,
        )
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors, listing each failing field."""
    errors = []
    for error in exc.errors():
        loc = error.get("loc", ())
        errors.append(
            {
                "field": ".".join(str(x) for x in loc) if loc else "unknown",
                "message": error.get("msg", "Validation error"),
                "type": error.get("type", "unknown"),
            }
        )

    await logger.awarning(
        "validation_error",
        error_count=len(errors),
        path=str(request.url.path),
    )
    return _problem_response(
        ProblemDetail(
            type="/errors/validation",
            title="Validation Error",
            status=422,
            detail="Request validation failed",
            extensions={"errors": errors},
        )
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions with a generic Problem Details response."""
    await logger.aexception(
        "unhandled_exception",
        exc_type=type(exc).__name__,
        path=str(request.url.path),
    )
    return _problem_response(
        ProblemDetail(
            type="/errors/internal",
            title="Internal Server Error",
            status=500,
            detail="An unexpected error occurred",
        )
    )


def setup_error_handlers(app: FastAPI) -> None:
    """Register all error handlers for the application."""
    app.add_exception_handler(APIError, api_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(MailBridgeError, domain_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)
