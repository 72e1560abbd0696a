"""Submission payload, answer value union and validation report models.

Answer values cross the boundary as ``string | string[] | number``. They are
converted once, here, into a tagged union (TextValue, ListValue, NumberValue)
so each validator branch works on a concretely typed value.
"""

from __future__ import annotations

import math
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


class TextValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    text: str


class ListValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["list"] = "list"
    items: List[str] = Field(default_factory=list)


class NumberValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["number"] = "number"
    number: float

    @model_validator(mode="after")
    def _finite(self) -> "NumberValue":
        if not math.isfinite(self.number):
            raise ValueError("number must be finite")
        return self


AnswerValue = Annotated[Union[TextValue, ListValue, NumberValue], Field(discriminator="kind")]


def coerce_answer_value(raw: Any) -> Any:
    """Convert a raw ``answer_value`` into the input for an AnswerValue.

    Already-tagged dicts and model instances pass through. Booleans become the
    canonical text tokens ``true``/``false``. Nested structures are rejected.
    """
    if raw is None or isinstance(raw, BaseModel):
        return raw
    if isinstance(raw, dict):
        if "kind" in raw:
            return raw
        raise ValueError("answer value must be a string, a list of strings or a number")
    if isinstance(raw, bool):
        return {"kind": "text", "text": "true" if raw else "false"}
    if isinstance(raw, (int, float)):
        return {"kind": "number", "number": raw}
    if isinstance(raw, str):
        return {"kind": "text", "text": raw}
    if isinstance(raw, (list, tuple)):
        items: List[str] = []
        for item in raw:
            if isinstance(item, (dict, list, tuple)) or item is None:
                raise ValueError("list answers may only contain scalar selections")
            items.append(str(item))
        return {"kind": "list", "items": items}
    raise ValueError(f"unsupported answer value type: {type(raw).__name__}")


class Answer(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_id: str = Field(min_length=1)
    value: Optional[AnswerValue] = None
    skipped: bool = False
    answer_text: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_raw_value(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        out = dict(data)
        if "questionId" in out and "question_id" not in out:
            out["question_id"] = out.pop("questionId")
        if "answer_value" in out and "value" not in out:
            out["value"] = out.pop("answer_value")
        out["value"] = coerce_answer_value(out.get("value"))
        return out

    @property
    def is_empty(self) -> bool:
        return is_empty_value(self.value) or self.skipped

    @property
    def raw_value(self) -> Union[str, List[str], float, int, None]:
        """Return the plain Python value (for hashing and storage)."""
        value = self.value
        if value is None:
            return None
        if isinstance(value, TextValue):
            return value.text
        if isinstance(value, ListValue):
            return list(value.items)
        num = value.number
        return int(num) if float(num).is_integer() else num


def is_empty_value(value: Optional[Any]) -> bool:
    if value is None:
        return True
    if isinstance(value, TextValue):
        return value.text.strip() == ""
    if isinstance(value, ListValue):
        return len(value.items) == 0
    return False


class Location(BaseModel):
    latitude: float
    longitude: float
    accuracy: Optional[float] = None


class SubmissionMetadata(BaseModel):
    model_config = ConfigDict(extra="ignore")

    start_time: Optional[str] = None
    completion_time: Optional[str] = None
    device_info: Optional[Dict[str, Any]] = None
    location: Optional[Location] = None


class SubmissionPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    questionnaire_id: str = Field(min_length=1)
    respondent_name: Optional[str] = None
    respondent_email: Optional[str] = None
    respondent_phone: Optional[str] = None
    precinct_id: Optional[str] = None
    answers: List[Answer] = Field(default_factory=list)
    metadata: SubmissionMetadata = Field(default_factory=SubmissionMetadata)
    is_draft: bool = False
    # Client-side id used by offline batch sync for deduplication
    client_id: Optional[str] = None


class ValidationReport(BaseModel):
    """Field path -> messages, split into blocking errors and advisory warnings.

    ``structural`` lists the field paths whose errors are structural (orphaned
    or duplicated answers); those block drafts as well as final submissions.
    """

    errors: Dict[str, List[str]] = Field(default_factory=dict)
    warnings: Dict[str, List[str]] = Field(default_factory=dict)
    structural: List[str] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def has_structural_errors(self) -> bool:
        return bool(self.structural)

    def add_error(self, field: str, message: str, structural: bool = False) -> None:
        self.errors.setdefault(field, []).append(message)
        if structural and field not in self.structural:
            self.structural.append(field)

    def add_errors(self, field: str, messages: List[str]) -> None:
        for message in messages:
            self.add_error(field, message)

    def add_warning(self, field: str, message: str) -> None:
        self.warnings.setdefault(field, []).append(message)

    def non_structural_errors(self) -> Dict[str, List[str]]:
        return {k: list(v) for k, v in self.errors.items() if k not in self.structural}


class ValidationSummary(BaseModel):
    total_questions: int
    applicable_questions: int
    answered_questions: int
    required_questions: int
    required_answered: int
    completion_percentage: int
    missing_required: List[str]
    conditional_questions: List[str]


__all__ = [
    "TextValue",
    "ListValue",
    "NumberValue",
    "AnswerValue",
    "coerce_answer_value",
    "is_empty_value",
    "Answer",
    "Location",
    "SubmissionMetadata",
    "SubmissionPayload",
    "ValidationReport",
    "ValidationSummary",
]
