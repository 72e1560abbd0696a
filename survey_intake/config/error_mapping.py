"""Central error mapping for submission failures.

Single source of truth for mapping machine codes to problem+json titles and
HTTP statuses. Adapters must import from here instead of hardcoding numbers.
"""

from __future__ import annotations

SUBMISSION_ERROR_MAP = {
    "INVALID_REQUEST_FORMAT": {"title": "Invalid Request", "status": 400},
    "VALIDATION_FAILED": {"title": "Validation Failed", "status": 400},
    "INVALID_QUESTIONNAIRE": {"title": "Invalid Questionnaire", "status": 400},
    "RECORD_NOT_FOUND": {"title": "Not Found", "status": 404},
    "DUPLICATE_SUBMISSION": {"title": "Conflict", "status": 409},
    "RECORD_IMMUTABLE": {"title": "Conflict", "status": 409},
    "TIMEOUT_ERROR": {"title": "Request Timeout", "status": 408},
    "RATE_LIMIT_EXCEEDED": {"title": "Too Many Requests", "status": 429},
    "NETWORK_ERROR": {"title": "Service Unavailable", "status": 503},
    "SERVER_ERROR": {"title": "Internal Server Error", "status": 500},
}

# Codes a client may reasonably retry after a delay
RETRY_SUGGESTED = frozenset({"NETWORK_ERROR", "TIMEOUT_ERROR", "RATE_LIMIT_EXCEEDED"})


def lookup(code: str) -> dict:
    return SUBMISSION_ERROR_MAP.get(code, SUBMISSION_ERROR_MAP["SERVER_ERROR"])


__all__ = ["SUBMISSION_ERROR_MAP", "RETRY_SUGGESTED", "lookup"]
