"""Per-question answer validation.

`AnswerValidator.validate` dispatches on the question type and returns the
list of messages for one answer (empty when the answer is acceptable). It
never raises for bad input; the caller accumulates messages per field path.
Emptiness and required-ness are decided by the submission validator, so the
branches here only run for answers that carry a value.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime
from typing import Callable, List, Optional

from survey_intake.config import ValidationConfig
from survey_intake.logic.answer_canonical import canonical_token
from survey_intake.models.questionnaire import Question, QuestionKind
from survey_intake.models.submission import Answer, AnswerValue, ListValue, NumberValue, TextValue


logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
PHONE_PATTERN = re.compile(r"^[0-9]{3}-[0-9]{3}-[0-9]{4}$")
_WHITESPACE = re.compile(r"\s+")

# Accepted in addition to ISO-8601
_ALTERNATE_DATE_FORMATS = ("%m/%d/%Y", "%d-%m-%Y")

DEFAULT_SCALE_MIN = 0.0
DEFAULT_SCALE_MAX = 10.0


def parse_date(text: str) -> Optional[date]:
    """Parse ISO-8601 (date or datetime), MM/DD/YYYY or DD-MM-YYYY.

    Returns None when the string matches none of them.
    """
    s = (text or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in _ALTERNATE_DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None


def age_on(birth: date, on: date) -> int:
    """Completed years between ``birth`` and ``on``."""
    years = on.year - birth.year
    if (on.month, on.day) < (birth.month, birth.day):
        years -= 1
    return years


def _as_text(value: AnswerValue) -> Optional[str]:
    if isinstance(value, TextValue):
        return value.text
    if isinstance(value, NumberValue):
        return canonical_token(value.number)
    return None


def _as_number(value: AnswerValue) -> Optional[float]:
    if isinstance(value, NumberValue):
        return float(value.number)
    if isinstance(value, TextValue):
        try:
            number = float(value.text.strip())
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def _fmt_bound(v: float) -> str:
    return canonical_token(v)


class AnswerValidator:
    """Type-dispatching validator for a single answer."""

    def __init__(
        self,
        config: Optional[ValidationConfig] = None,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self._config = config or ValidationConfig()
        self._today = today or date.today

    def validate(self, question: Question, answer: Answer, today: Optional[date] = None) -> List[str]:
        value = answer.value
        if value is None:
            return []
        kind = question.type
        if kind in (QuestionKind.SHORT_TEXT, QuestionKind.LONG_TEXT):
            return self._validate_text(question, value)
        if kind == QuestionKind.EMAIL:
            return self._validate_email(value)
        if kind == QuestionKind.PHONE:
            return self._validate_phone(value)
        if kind == QuestionKind.DATE:
            return self._validate_date(question, value, today or self._today())
        if kind == QuestionKind.NUMERIC_SCALE:
            return self._validate_scale(question, value)
        if kind == QuestionKind.SINGLE_CHOICE:
            return self._validate_single_choice(question, value)
        if kind == QuestionKind.MULTI_CHOICE:
            return self._validate_multi_choice(question, value)
        logger.warning("answer_validation_unknown_type question_id=%s type=%s", question.id, kind)
        return []

    def _validate_text(self, question: Question, value: AnswerValue) -> List[str]:
        raw = _as_text(value)
        if raw is None:
            return ["expected a text answer"]
        text = raw.strip()
        rules = question.rules
        errors: List[str] = []
        if rules.min_length is not None and len(text) < rules.min_length:
            errors.append(f"must be at least {rules.min_length} characters")
        elif (
            question.type == QuestionKind.LONG_TEXT
            and question.required
            and rules.min_length is None
            and len(text) < self._config.min_long_text_length
        ):
            errors.append(f"must be at least {self._config.min_long_text_length} characters")
        if rules.max_length is not None and len(text) > rules.max_length:
            errors.append(f"must be at most {rules.max_length} characters")
        if rules.pattern:
            try:
                if re.fullmatch(rules.pattern, text) is None:
                    errors.append("does not match the required format")
            except re.error:
                logger.error("answer_validation_bad_pattern question_id=%s pattern=%s", question.id, rules.pattern)
                errors.append("does not match the required format")
        return errors

    def _validate_email(self, value: AnswerValue) -> List[str]:
        raw = _as_text(value)
        if raw is None or not EMAIL_PATTERN.match(raw.strip()):
            return ["must be a valid email address"]
        return []

    def _validate_phone(self, value: AnswerValue) -> List[str]:
        raw = _as_text(value)
        if raw is None or not PHONE_PATTERN.match(_WHITESPACE.sub("", raw)):
            return ["must be a phone number in the format NNN-NNN-NNNN"]
        return []

    def _validate_date(self, question: Question, value: AnswerValue, today: date) -> List[str]:
        raw = _as_text(value)
        parsed = parse_date(raw) if raw is not None else None
        if parsed is None:
            return ["must be a valid date"]
        if not question.is_birth_date:
            return []
        if parsed >= today:
            return ["birth date must be in the past"]
        age = age_on(parsed, today)
        if age > self._config.max_age_years:
            return [f"birth date implies an age over {self._config.max_age_years} years"]
        if age < self._config.min_age_years:
            return [f"respondent must be at least {self._config.min_age_years} years old"]
        return []

    def _validate_scale(self, question: Question, value: AnswerValue) -> List[str]:
        number = _as_number(value)
        if number is None:
            return ["must be a number"]
        rules = question.rules
        errors: List[str] = []
        if rules.integer_only and not float(number).is_integer():
            errors.append("must be a whole number")
        low = rules.min if rules.min is not None else DEFAULT_SCALE_MIN
        high = rules.max if rules.max is not None else DEFAULT_SCALE_MAX
        if number < low or number > high:
            errors.append(f"must be between {_fmt_bound(low)} and {_fmt_bound(high)}")
        return errors

    def _validate_single_choice(self, question: Question, value: AnswerValue) -> List[str]:
        if isinstance(value, ListValue):
            return ["expected a single selection"]
        raw = _as_text(value)
        allowed = question.option_values
        if allowed and (raw is None or raw.strip() not in allowed):
            return ["selection is not one of the available options"]
        return []

    def _validate_multi_choice(self, question: Question, value: AnswerValue) -> List[str]:
        if not isinstance(value, ListValue):
            return ["expected a list of selections"]
        items = list(value.items)
        rules = question.rules
        errors: List[str] = []
        if rules.min_selections is not None and len(items) < rules.min_selections:
            errors.append(f"select at least {rules.min_selections} options")
        elif rules.max_selections is not None and len(items) > rules.max_selections:
            errors.append(f"select at most {rules.max_selections} options")
        allowed = question.option_values
        if allowed and any(item not in allowed for item in items):
            errors.append("some selections are not available options")
        if len(set(items)) != len(items):
            errors.append("selections must not repeat")
        return errors


def validate_answer(question: Question, answer: Answer, today: Optional[date] = None) -> List[str]:
    """Validate one answer with default settings."""
    return AnswerValidator().validate(question, answer, today=today)


__all__ = [
    "EMAIL_PATTERN",
    "PHONE_PATTERN",
    "AnswerValidator",
    "validate_answer",
    "parse_date",
    "age_on",
]
