"""Cross-field business rules evaluated over the full answer map.

Each rule is a plain function of (answers, context, settings) returning a list
of messages. Rules are independent: every rule runs on every evaluation, in
any order, and a rule whose inputs are missing or unparsable returns nothing.

Only factual impossibilities are hard errors. Plausible but unusual answer
patterns are returned as warnings for human review.
"""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import Callable, Dict, FrozenSet, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from survey_intake.config import BusinessRuleSettings
from survey_intake.logic.answer_canonical import canonical_tokens
from survey_intake.logic.answer_validation import age_on, parse_date
from survey_intake.models.submission import Answer, TextValue


logger = logging.getLogger(__name__)

_BRACKET_RANGE = re.compile(r"^\s*(\d+)\s*-\s*(\d+)\s*$")
_BRACKET_OPEN = re.compile(r"^\s*(\d+)\s*\+\s*$")


class RuleContext(BaseModel):
    """Inputs a rule may read besides the answers."""

    model_config = ConfigDict(frozen=True)

    today: date
    respondent_email: Optional[str] = None
    respondent_phone: Optional[str] = None
    # Question ids of the questionnaire being validated; None when unknown
    question_ids: Optional[FrozenSet[str]] = None


class BusinessRuleOutcome(BaseModel):
    errors: Dict[str, List[str]] = Field(default_factory=dict)
    warnings: Dict[str, List[str]] = Field(default_factory=dict)

    @property
    def is_clean(self) -> bool:
        return not self.errors and not self.warnings


RuleFn = Callable[[Mapping[str, Answer], RuleContext, BusinessRuleSettings], List[str]]


def _token(answers: Mapping[str, Answer], question_id: str) -> Optional[str]:
    answer = answers.get(question_id)
    if answer is None or answer.is_empty:
        return None
    tokens = canonical_tokens(answer.value)
    return tokens[0].strip().lower() if tokens else None


def _is_yes(token: Optional[str], settings: BusinessRuleSettings) -> bool:
    return token is not None and token in {t.lower() for t in settings.yes_tokens}


def _is_no(token: Optional[str], settings: BusinessRuleSettings) -> bool:
    return token is not None and token in {t.lower() for t in settings.no_tokens}


def _birth_date(answers: Mapping[str, Answer], settings: BusinessRuleSettings) -> Optional[date]:
    answer = answers.get(settings.birth_date_question)
    if answer is None or answer.is_empty or not isinstance(answer.value, TextValue):
        return None
    return parse_date(answer.value.text)


def parse_age_bracket(label: str) -> Optional[Tuple[int, Optional[int]]]:
    """Parse "18-25" -> (18, 25) and "56+" -> (56, None); None if unrecognised."""
    m = _BRACKET_RANGE.match(label)
    if m:
        return int(m.group(1)), int(m.group(2))
    m = _BRACKET_OPEN.match(label)
    if m:
        return int(m.group(1)), None
    return None


def age_consistency(answers: Mapping[str, Answer], ctx: RuleContext, settings: BusinessRuleSettings) -> List[str]:
    birth = _birth_date(answers, settings)
    bracket_answer = answers.get(settings.age_range_question)
    if birth is None or bracket_answer is None or bracket_answer.is_empty:
        return []
    tokens = canonical_tokens(bracket_answer.value)
    bracket = parse_age_bracket(tokens[0]) if tokens else None
    if bracket is None:
        logger.debug("age_consistency_skip unparsable_bracket=%s", tokens)
        return []
    age = age_on(birth, ctx.today)
    low, high = bracket
    if age < low or (high is not None and age > high):
        return [f"computed age {age} does not fall in the selected age range {tokens[0]}"]
    return []


def dependent_field_completeness(
    answers: Mapping[str, Answer], ctx: RuleContext, settings: BusinessRuleSettings
) -> List[str]:
    messages: List[str] = []
    sentinel = settings.not_applicable_sentinel.strip().lower()
    for gate_id, dependent_id in settings.dependent_fields.items():
        gate = _token(answers, gate_id)
        if gate is None:
            continue
        follow_up = _token(answers, dependent_id)
        if _is_yes(gate, settings):
            if follow_up is None or follow_up == sentinel:
                messages.append(f"{dependent_id} is required when {gate_id} is answered yes")
        elif _is_no(gate, settings):
            if follow_up is not None and follow_up != sentinel:
                messages.append(f"{dependent_id} must be empty when {gate_id} is answered no")
    return messages


def historical_eligibility(
    answers: Mapping[str, Answer], ctx: RuleContext, settings: BusinessRuleSettings
) -> List[str]:
    birth = _birth_date(answers, settings)
    if birth is None:
        return []
    messages: List[str] = []
    for question_id, year in sorted(settings.voting_history.items(), key=lambda kv: kv[1]):
        if year > ctx.today.year:
            continue
        if not _is_yes(_token(answers, question_id), settings):
            continue
        age_then = age_on(birth, date(year, 12, 31))
        if age_then < 18:
            messages.append(f"respondent was {age_then} in {year} and could not have voted ({question_id})")
    return messages


def transportation_consistency(
    answers: Mapping[str, Answer], ctx: RuleContext, settings: BusinessRuleSettings
) -> List[str]:
    needs = _token(answers, settings.transportation_need_question)
    has = _token(answers, settings.transportation_available_question)
    if _is_yes(needs, settings) and _is_yes(has, settings):
        return ["respondent needs transportation but also reports having it available"]
    return []


def no_contact_method(answers: Mapping[str, Answer], ctx: RuleContext, settings: BusinessRuleSettings) -> List[str]:
    if ctx.question_ids is not None and not ctx.question_ids.intersection(settings.contact_questions):
        return []
    if (ctx.respondent_email or "").strip() or (ctx.respondent_phone or "").strip():
        return []
    if any(_token(answers, qid) is not None for qid in settings.contact_questions):
        return []
    return ["no contact method was provided"]


def never_voted_but_intends(
    answers: Mapping[str, Answer], ctx: RuleContext, settings: BusinessRuleSettings
) -> List[str]:
    frequency = _token(answers, settings.voting_frequency_question)
    intends = _token(answers, settings.intends_to_vote_question)
    if frequency is None or intends is None:
        return []
    if frequency in {t.lower() for t in settings.never_voted_tokens} and _is_yes(intends, settings):
        return ["respondent never voted before but intends to vote; review for follow-up"]
    return []


ERROR_RULES: Dict[str, RuleFn] = {
    "age_consistency": age_consistency,
    "dependent_field_completeness": dependent_field_completeness,
    "historical_eligibility": historical_eligibility,
}

WARNING_RULES: Dict[str, RuleFn] = {
    "transportation_consistency": transportation_consistency,
    "no_contact_method": no_contact_method,
    "never_voted_but_intends": never_voted_but_intends,
}


class BusinessRuleEngine:
    def __init__(self, settings: Optional[BusinessRuleSettings] = None) -> None:
        self._settings = settings or BusinessRuleSettings()

    @property
    def settings(self) -> BusinessRuleSettings:
        return self._settings

    def evaluate(self, answers: Mapping[str, Answer], *, context: Optional[RuleContext] = None) -> BusinessRuleOutcome:
        """Run every rule and return findings keyed by rule name.

        Rules never short-circuit each other; an empty outcome means no rule fired.
        """
        ctx = context or RuleContext(today=date.today())
        outcome = BusinessRuleOutcome()
        for name, rule in ERROR_RULES.items():
            messages = rule(answers, ctx, self._settings)
            if messages:
                outcome.errors[name] = messages
        for name, rule in WARNING_RULES.items():
            messages = rule(answers, ctx, self._settings)
            if messages:
                outcome.warnings[name] = messages
        if outcome.errors:
            logger.info("business_rules_errors rules=%s", sorted(outcome.errors))
        return outcome


__all__ = [
    "RuleContext",
    "BusinessRuleOutcome",
    "BusinessRuleEngine",
    "ERROR_RULES",
    "WARNING_RULES",
    "parse_age_bracket",
    "age_consistency",
    "dependent_field_completeness",
    "historical_eligibility",
    "transportation_consistency",
    "no_contact_method",
    "never_voted_but_intends",
]
