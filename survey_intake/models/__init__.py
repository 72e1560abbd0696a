"""Pydantic models shared across the validation engine and the pipeline."""

from survey_intake.models.questionnaire import (
    AllOfCondition,
    CatalogError,
    Question,
    QuestionCatalog,
    QuestionKind,
    Questionnaire,
    SingleCondition,
)
from survey_intake.models.records import PipelineResult, StoredAnswer, SubmissionRecord
from survey_intake.models.submission import (
    Answer,
    ListValue,
    NumberValue,
    SubmissionPayload,
    TextValue,
    ValidationReport,
)

__all__ = [
    "AllOfCondition",
    "CatalogError",
    "Question",
    "QuestionCatalog",
    "QuestionKind",
    "Questionnaire",
    "SingleCondition",
    "PipelineResult",
    "StoredAnswer",
    "SubmissionRecord",
    "Answer",
    "ListValue",
    "NumberValue",
    "SubmissionPayload",
    "TextValue",
    "ValidationReport",
]
