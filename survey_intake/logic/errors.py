"""Domain exceptions for validation and the submission pipeline.

Every failure a caller can observe derives from SubmissionError and carries a
short machine code plus a human-readable message. Transient infrastructure
failures carry the retry category the executor classifies on.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class SubmissionError(Exception):
    code = "SERVER_ERROR"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})
        if code:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class StructuralError(SubmissionError):
    """Malformed payload shape; never retried."""

    code = "INVALID_REQUEST_FORMAT"

    def __init__(self, message: str, errors: Optional[Dict[str, List[str]]] = None) -> None:
        super().__init__(message, details={"errors": dict(errors or {})})
        self.errors: Dict[str, List[str]] = dict(errors or {})


class ValidationFailed(SubmissionError):
    code = "VALIDATION_FAILED"

    def __init__(self, message: str, report: Any) -> None:
        super().__init__(
            message,
            details={"errors": dict(report.errors), "warnings": dict(report.warnings)},
        )
        self.report = report


class DuplicateSubmission(SubmissionError):
    code = "DUPLICATE_SUBMISSION"

    def __init__(self, existing_record_id: str) -> None:
        super().__init__(
            "a completed submission already exists for this respondent",
            details={"existing_record_id": existing_record_id},
        )
        self.existing_record_id = existing_record_id


class RecordImmutable(SubmissionError):
    code = "RECORD_IMMUTABLE"

    def __init__(self, record_id: str, action: str) -> None:
        super().__init__(
            f"record {record_id} is completed and cannot be {action}",
            details={"record_id": record_id, "action": action},
        )
        self.record_id = record_id


class RecordNotFound(SubmissionError):
    code = "RECORD_NOT_FOUND"

    def __init__(self, record_id: str) -> None:
        super().__init__(f"record {record_id} not found", details={"record_id": record_id})
        self.record_id = record_id


class TransientError(SubmissionError):
    """Infrastructure failure that may succeed on a later attempt."""

    code = "NETWORK_ERROR"
    category = "NETWORK_ERROR"


class NetworkError(TransientError):
    category = "NETWORK_ERROR"


class ServiceTimeout(TransientError):
    code = "TIMEOUT_ERROR"
    category = "TIMEOUT_ERROR"


class ServerError(TransientError):
    code = "SERVER_ERROR"
    category = "SERVER_ERROR"

    def __init__(self, message: str, status_code: int = 500) -> None:
        super().__init__(message, details={"status_code": status_code})
        self.status_code = status_code


class RateLimited(TransientError):
    code = "RATE_LIMIT_EXCEEDED"
    category = "RATE_LIMIT_EXCEEDED"


class RetryExhausted(SubmissionError):
    """Raised when every allowed attempt failed with a retryable error."""

    code = "NETWORK_ERROR"

    def __init__(
        self,
        *,
        attempts: int,
        elapsed_ms: int,
        request_id: str,
        last_error: BaseException,
        reason: str = "attempts_exhausted",
    ) -> None:
        super().__init__(
            f"operation failed after {attempts} attempts: {last_error}",
            details={
                "attempts": attempts,
                "elapsed_ms": elapsed_ms,
                "request_id": request_id,
                "reason": reason,
                "last_error": str(last_error),
            },
        )
        self.attempts = attempts
        self.elapsed_ms = elapsed_ms
        self.request_id = request_id
        self.last_error = last_error
        self.reason = reason
        self.__cause__ = last_error


__all__ = [
    "SubmissionError",
    "StructuralError",
    "ValidationFailed",
    "DuplicateSubmission",
    "RecordImmutable",
    "RecordNotFound",
    "TransientError",
    "NetworkError",
    "ServiceTimeout",
    "ServerError",
    "RateLimited",
    "RetryExhausted",
]
