"""Questionnaire structure and the read-only QuestionCatalog.

Questionnaires arrive from the calling layer as nested sections of questions.
Models here are frozen once loaded; the catalog flattens sections into a single
ordered index keyed by question id. Legacy type names, camelCase rule keys and
the untagged ``conditional_logic`` shape used by stored questionnaires are
normalised on load so downstream code only ever sees the tagged forms.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, Iterator, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class QuestionKind:
    SHORT_TEXT = "short_text"
    LONG_TEXT = "long_text"
    SINGLE_CHOICE = "single_choice"
    MULTI_CHOICE = "multi_choice"
    NUMERIC_SCALE = "numeric_scale"
    DATE = "date"
    EMAIL = "email"
    PHONE = "phone"


QuestionType = Literal[
    "short_text",
    "long_text",
    "single_choice",
    "multi_choice",
    "numeric_scale",
    "date",
    "email",
    "phone",
]

# Type names used by stored questionnaires and the form renderer
LEGACY_TYPE_NAMES: Dict[str, str] = {
    "text": QuestionKind.SHORT_TEXT,
    "textarea": QuestionKind.LONG_TEXT,
    "radio": QuestionKind.SINGLE_CHOICE,
    "checkbox": QuestionKind.MULTI_CHOICE,
    "scale": QuestionKind.NUMERIC_SCALE,
    "tel": QuestionKind.PHONE,
}

TEXT_KINDS = frozenset({QuestionKind.SHORT_TEXT, QuestionKind.LONG_TEXT})
CHOICE_KINDS = frozenset({QuestionKind.SINGLE_CHOICE, QuestionKind.MULTI_CHOICE})


class CatalogError(ValueError):
    """Raised when a questionnaire structure cannot be indexed."""


class QuestionOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: str
    label: str = ""


class ValidationRules(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    min_length: Optional[int] = Field(default=None, alias="minLength")
    max_length: Optional[int] = Field(default=None, alias="maxLength")
    pattern: Optional[str] = None
    min: Optional[float] = None
    max: Optional[float] = None
    integer_only: bool = Field(default=False, alias="integerOnly")
    min_selections: Optional[int] = Field(default=None, alias="minSelections")
    max_selections: Optional[int] = Field(default=None, alias="maxSelections")


ConditionOperator = Literal["equals", "not_equals", "in", "not_in"]


class SingleCondition(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["single"] = "single"
    question_id: str
    operator: ConditionOperator = "equals"
    value: Any = None


class AllOfCondition(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["all-of"] = "all-of"
    conditions: List[SingleCondition] = Field(min_length=1)


VisibilityCondition = Annotated[Union[SingleCondition, AllOfCondition], Field(discriminator="kind")]


def _normalise_condition(raw: Any) -> Any:
    """Map the legacy ``{questionId, value}`` shape onto a tagged condition.

    Tagged dicts and model instances pass through untouched; a bare list of
    conditions becomes an ``all-of``.
    """
    if raw is None or isinstance(raw, BaseModel):
        return raw
    if isinstance(raw, list):
        return {"kind": "all-of", "conditions": [_normalise_condition(c) for c in raw]}
    if isinstance(raw, dict) and "kind" not in raw:
        out = dict(raw)
        if "questionId" in out and "question_id" not in out:
            out["question_id"] = out.pop("questionId")
        out["kind"] = "single"
        return out
    return raw


class Question(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(min_length=1)
    text: str = ""
    type: QuestionType
    required: bool = False
    options: List[QuestionOption] = Field(default_factory=list)
    rules: ValidationRules = Field(default_factory=ValidationRules)
    condition: Optional[VisibilityCondition] = None
    # Semantic tag for question-specific checks (e.g. "birth_date")
    semantic: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_stored_shape(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        out = dict(data)
        qtype = out.get("type")
        if isinstance(qtype, str):
            out["type"] = LEGACY_TYPE_NAMES.get(qtype, qtype)
        if "is_required" in out and "required" not in out:
            out["required"] = out.pop("is_required")
        for legacy in ("validation_rules", "validation"):
            if legacy in out and "rules" not in out:
                out["rules"] = out.pop(legacy) or {}
        # Selection limits and scale bounds were sometimes stored at top level
        top_level_rules = {k: out.pop(k) for k in ("minSelections", "maxSelections", "min", "max") if k in out}
        if top_level_rules:
            merged = dict(out.get("rules") or {})
            for key, val in top_level_rules.items():
                merged.setdefault(key, val)
            out["rules"] = merged
        for legacy in ("conditional_logic", "conditional"):
            if legacy in out and "condition" not in out:
                out["condition"] = out.pop(legacy)
        out["condition"] = _normalise_condition(out.get("condition"))
        return out

    @property
    def option_values(self) -> List[str]:
        return [opt.value for opt in self.options]

    @property
    def is_birth_date(self) -> bool:
        if self.type != QuestionKind.DATE:
            return False
        if self.semantic is not None:
            return self.semantic == "birth_date"
        return "birth" in self.id


class Section(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str = ""
    questions: List[Question] = Field(default_factory=list)


class Questionnaire(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    tenant_id: Optional[str] = None
    is_active: bool = True
    sections: List[Section] = Field(default_factory=list)


class QuestionCatalog:
    """Read-only index of a questionnaire's questions, flattened across sections.

    Question ids must be unique and every condition must reference a question
    that exists in the same questionnaire; both are checked on construction so
    the evaluator never has to handle dangling references.
    """

    def __init__(self, questionnaire: Questionnaire) -> None:
        self._questionnaire = questionnaire
        index: Dict[str, Question] = {}
        for section in questionnaire.sections:
            for question in section.questions:
                if question.id in index:
                    raise CatalogError(f"duplicate question id: {question.id}")
                index[question.id] = question
        for question in index.values():
            for ref in _condition_targets(question.condition):
                if ref not in index:
                    raise CatalogError(f"question {question.id} has a condition on unknown question {ref}")
                if ref == question.id:
                    raise CatalogError(f"question {question.id} has a condition on itself")
        self._index = index

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuestionCatalog":
        return cls(Questionnaire.model_validate(data))

    @property
    def questionnaire_id(self) -> str:
        return self._questionnaire.id

    @property
    def tenant_id(self) -> Optional[str]:
        return self._questionnaire.tenant_id

    @property
    def questionnaire(self) -> Questionnaire:
        return self._questionnaire

    @property
    def questions(self) -> List[Question]:
        return list(self._index.values())

    def get(self, question_id: str) -> Optional[Question]:
        return self._index.get(question_id)

    def __contains__(self, question_id: object) -> bool:
        return question_id in self._index

    def __iter__(self) -> Iterator[Question]:
        return iter(self._index.values())

    def __len__(self) -> int:
        return len(self._index)


def _condition_targets(condition: Optional[VisibilityCondition]) -> List[str]:
    if condition is None:
        return []
    if isinstance(condition, AllOfCondition):
        return [c.question_id for c in condition.conditions]
    return [condition.question_id]


__all__ = [
    "QuestionKind",
    "QuestionType",
    "LEGACY_TYPE_NAMES",
    "TEXT_KINDS",
    "CHOICE_KINDS",
    "CatalogError",
    "QuestionOption",
    "ValidationRules",
    "SingleCondition",
    "AllOfCondition",
    "VisibilityCondition",
    "Question",
    "Section",
    "Questionnaire",
    "QuestionCatalog",
]
