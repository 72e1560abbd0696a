"""Conditional visibility evaluation over the question dependency graph.

A question is applicable when its condition holds against the current answer
set. Conditions are a tagged variant: a single comparison, or an ``all-of``
list where every comparison must hold. Evaluation is a pure function of the
answers passed in.
"""

from __future__ import annotations

from typing import Iterable, List, Mapping, Optional, Set

from survey_intake.logic.answer_canonical import canonical_token, canonical_tokens
from survey_intake.models.questionnaire import (
    AllOfCondition,
    Question,
    QuestionCatalog,
    SingleCondition,
    VisibilityCondition,
)
from survey_intake.models.submission import Answer


def _comparison_set(value: object) -> Set[str]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return {canonical_token(v) for v in value}
    if value is None:
        return set()
    return {canonical_token(value)}


def condition_holds(condition: SingleCondition, answers: Mapping[str, Answer]) -> bool:
    """Return True if a single condition holds.

    The referenced answer must exist and be non-empty; a missing gate never
    makes a dependent question visible, whatever the operator. For list
    answers, ``equals`` means the value is among the selections and ``in``
    means the selections overlap the set.
    """
    answer = answers.get(condition.question_id)
    if answer is None or answer.is_empty:
        return False
    tokens = set(canonical_tokens(answer.value))
    targets = _comparison_set(condition.value)
    if condition.operator in ("equals", "not_equals"):
        if isinstance(condition.value, (list, tuple, set, frozenset)):
            matched = tokens == targets
        else:
            matched = bool(targets) and next(iter(targets)) in tokens
        return matched if condition.operator == "equals" else not matched
    overlap = bool(tokens & targets)
    return overlap if condition.operator == "in" else not overlap


def is_applicable(question: Question, answers: Mapping[str, Answer]) -> bool:
    """Return True if ``question`` is currently visible given ``answers``."""
    return evaluate_condition(question.condition, answers)


def evaluate_condition(condition: Optional[VisibilityCondition], answers: Mapping[str, Answer]) -> bool:
    if condition is None:
        return True
    if isinstance(condition, AllOfCondition):
        return all(condition_holds(c, answers) for c in condition.conditions)
    return condition_holds(condition, answers)


def applicable_question_ids(catalog: QuestionCatalog, answers: Mapping[str, Answer]) -> List[str]:
    """Return applicable question ids in catalog order."""
    return [q.id for q in catalog if is_applicable(q, answers)]


def conditional_question_ids(catalog: QuestionCatalog) -> List[str]:
    return [q.id for q in catalog if q.condition is not None]


def answers_by_question(answers: Iterable[Answer]) -> dict[str, Answer]:
    """Index answers by question id; later duplicates do not overwrite earlier ones.

    Duplicates are reported by the submission validator, not resolved here.
    """
    index: dict[str, Answer] = {}
    for answer in answers:
        index.setdefault(answer.question_id, answer)
    return index


__all__ = [
    "condition_holds",
    "evaluate_condition",
    "is_applicable",
    "applicable_question_ids",
    "conditional_question_ids",
    "answers_by_question",
]
