"""Persisted record shapes and pipeline result types."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


RecordStatus = Literal["draft", "completed"]


class SubmissionRecord(BaseModel):
    id: str
    tenant_id: Optional[str] = None
    questionnaire_id: str
    volunteer_id: str
    respondent_name: Optional[str] = None
    respondent_email: Optional[str] = None
    respondent_phone: Optional[str] = None
    precinct_id: Optional[str] = None
    status: RecordStatus = "draft"
    created_at: datetime
    updated_at: datetime
    completion_time_ms: Optional[int] = None
    # completion_percentage, answer_count, device_info, start_time, completion_time
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_final(self) -> bool:
        return self.status == "completed"


class StoredAnswer(BaseModel):
    """One persisted answer row linked to a submission record.

    ``answer_value`` always holds a string form; numbers are mirrored into
    ``answer_numeric`` and list selections into ``answer_json``.
    """

    record_id: str
    question_id: str
    answer_value: Optional[str] = None
    answer_numeric: Optional[float] = None
    answer_json: Optional[List[str]] = None


class PipelineResult(BaseModel):
    id: str
    status: RecordStatus
    completion_percentage: int
    answer_count: int
    warnings: Dict[str, List[str]] = Field(default_factory=dict)
    replayed: bool = False


class BatchItemResult(BaseModel):
    client_id: Optional[str] = None
    success: bool
    record_id: Optional[str] = None
    status: Optional[RecordStatus] = None
    error_code: Optional[str] = None
    error: Optional[str] = None
    validation_errors: Optional[Dict[str, List[str]]] = None


class CleanupResult(BaseModel):
    drafts_found: int
    drafts_deleted: int
    kept_recent: int
    dry_run: bool
    deleted_ids: List[str] = Field(default_factory=list)


class RecordWithAnswers(BaseModel):
    record: SubmissionRecord
    answers: List[StoredAnswer] = Field(default_factory=list)


__all__ = [
    "RecordStatus",
    "SubmissionRecord",
    "StoredAnswer",
    "PipelineResult",
    "BatchItemResult",
    "CleanupResult",
    "RecordWithAnswers",
]
