"""Problem+JSON rendering and exception handlers for the HTTP adapter.

Domain exceptions carry a machine code; the status and title come from the
central error map so handlers never hardcode numbers.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from survey_intake.config.error_mapping import RETRY_SUGGESTED, lookup
from survey_intake.logic.errors import SubmissionError

PROBLEM_MEDIA_TYPE = "application/problem+json"

logger = logging.getLogger(__name__)


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def problem_body(exc: SubmissionError, request_id: str | None = None) -> Dict[str, Any]:
    mapped = lookup(exc.code)
    body: Dict[str, Any] = {
        "title": mapped["title"],
        "status": mapped["status"],
        "detail": exc.message,
        "code": exc.code,
    }
    for key in ("errors", "warnings"):
        value = exc.details.get(key)
        if value:
            body[key] = value
    extra = {k: v for k, v in exc.details.items() if k not in ("errors", "warnings")}
    if extra:
        body["context"] = extra
    if request_id:
        body["request_id"] = request_id
    return body


async def handle_submission_error(request: Request, exc: SubmissionError) -> JSONResponse:  # noqa: D401
    body = problem_body(exc, _request_id(request))
    headers: Dict[str, str] = {}
    if exc.code in RETRY_SUGGESTED:
        headers["Retry-After"] = "5"
    if body["status"] >= 500:
        logger.error("submission_error code=%s detail=%s", exc.code, exc.message, exc_info=exc)
    else:
        logger.info("submission_error code=%s status=%s", exc.code, body["status"])
    return JSONResponse(body, status_code=body["status"], media_type=PROBLEM_MEDIA_TYPE, headers=headers or None)


async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:  # noqa: D401
    status = int(getattr(exc, "status_code", 500) or 500)
    if isinstance(exc.detail, dict):
        detail = dict(exc.detail)
    else:
        detail = {"title": "Error", "status": status, "detail": str(exc.detail or "")}
    headers = {str(k): str(v) for k, v in (exc.headers or {}).items()}
    return JSONResponse(detail, status_code=status, media_type=PROBLEM_MEDIA_TYPE, headers=headers or None)


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:  # noqa: D401
    problem = {
        "title": "Invalid Request",
        "status": 422,
        "detail": "Request validation failed",
        "code": "INVALID_REQUEST_FORMAT",
        "errors": [
            {"loc": list(e.get("loc", ())), "msg": str(e.get("msg", ""))} for e in exc.errors()
        ],
    }
    return JSONResponse(problem, status_code=422, media_type=PROBLEM_MEDIA_TYPE)


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:  # noqa: D401
    logger.error("unexpected_error", exc_info=exc)
    return JSONResponse(
        {"title": "Internal Server Error", "status": 500, "code": "SERVER_ERROR"},
        status_code=500,
        media_type=PROBLEM_MEDIA_TYPE,
    )


__all__ = [
    "PROBLEM_MEDIA_TYPE",
    "problem_body",
    "handle_submission_error",
    "handle_http_exception",
    "handle_request_validation_error",
    "handle_unexpected_error",
]
