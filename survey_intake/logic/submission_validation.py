"""Submission-level validation orchestrator.

`SubmissionValidator.validate` runs, in order and without short-circuiting:

1. payload-level checks (respondent name, optional contact fields, metadata
   timestamps);
2. answer indexing, where orphaned or duplicated answers are structural errors;
3. per-question checks for every applicable question (required-ness, type
   rules, security screen);
4. the business rule engine over the whole answer map.

In draft mode missing required answers and a missing respondent name are
warnings; everything else keeps its severity and the pipeline decides what a
draft save tolerates. Validation is a pure function of its inputs.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from survey_intake.config import BusinessRuleSettings, ValidationConfig
from survey_intake.logic.answer_validation import EMAIL_PATTERN, PHONE_PATTERN, AnswerValidator
from survey_intake.logic.business_rules import BusinessRuleEngine, RuleContext
from survey_intake.logic.errors import StructuralError
from survey_intake.logic.input_screen import screen_text, screen_value
from survey_intake.logic.payload_shape import parse_payload
from survey_intake.logic.visibility_rules import answers_by_question, conditional_question_ids, is_applicable
from survey_intake.models.questionnaire import QuestionCatalog
from survey_intake.models.submission import Answer, SubmissionPayload, ValidationReport, ValidationSummary


logger = logging.getLogger(__name__)

REQUIRED_WEIGHT = 0.7
OPTIONAL_WEIGHT = 0.3

MSG_REQUIRED = "this question is required"
MSG_UNKNOWN_QUESTION = "answer references a question that is not part of this questionnaire"
MSG_DUPLICATE_ANSWER = "question answered more than once in the same submission"


def _parse_timestamp(value: str) -> bool:
    try:
        datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return False
    return True


def _answer_map(answers: Union[Mapping[str, Answer], Iterable[Answer]]) -> Dict[str, Answer]:
    if isinstance(answers, Mapping):
        return dict(answers)
    return answers_by_question(answers)


class SubmissionValidator:
    def __init__(
        self,
        config: Optional[ValidationConfig] = None,
        rule_settings: Optional[BusinessRuleSettings] = None,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self._config = config or ValidationConfig()
        self._today = today or date.today
        self._answers = AnswerValidator(self._config, today=self._today)
        self._rules = BusinessRuleEngine(rule_settings)

    def validate(
        self,
        payload: SubmissionPayload,
        catalog: QuestionCatalog,
        is_draft: Optional[bool] = None,
        today: Optional[date] = None,
    ) -> ValidationReport:
        draft = payload.is_draft if is_draft is None else is_draft
        on = today or self._today()
        report = ValidationReport()

        self._check_payload_fields(payload, catalog, report, draft)
        answers = self._index_answers(payload.answers, catalog, report)

        for question in catalog:
            if not is_applicable(question, answers):
                continue
            field = f"answers.{question.id}"
            answer = answers.get(question.id)
            if answer is None or answer.is_empty:
                if question.required:
                    if draft:
                        report.add_warning(field, MSG_REQUIRED)
                    else:
                        report.add_error(field, MSG_REQUIRED)
                continue
            report.add_errors(field, self._answers.validate(question, answer, today=on))
            report.add_errors(field, screen_value(answer.value, max_length=self._config.max_text_length))

        ctx = RuleContext(
            today=on,
            respondent_email=payload.respondent_email,
            respondent_phone=payload.respondent_phone,
            question_ids=frozenset(q.id for q in catalog),
        )
        outcome = self._rules.evaluate(answers, context=ctx)
        for name, messages in outcome.errors.items():
            report.add_errors(f"business_rules.{name}", messages)
        for name, messages in outcome.warnings.items():
            for message in messages:
                report.add_warning(f"business_rules.{name}", message)

        logger.info(
            "submission_validated questionnaire_id=%s draft=%s errors=%s warnings=%s",
            catalog.questionnaire_id,
            draft,
            len(report.errors),
            len(report.warnings),
        )
        return report

    def _check_payload_fields(
        self, payload: SubmissionPayload, catalog: QuestionCatalog, report: ValidationReport, draft: bool
    ) -> None:
        if payload.questionnaire_id != catalog.questionnaire_id:
            report.add_error(
                "questionnaire_id",
                f"payload targets questionnaire {payload.questionnaire_id}, not {catalog.questionnaire_id}",
                structural=True,
            )

        name = (payload.respondent_name or "").strip()
        min_name = self._config.min_respondent_name_length
        if len(name) < min_name:
            message = f"respondent name must be at least {min_name} characters"
            if draft:
                report.add_warning("respondent_name", message)
            else:
                report.add_error("respondent_name", message)
        if name:
            report.add_errors("respondent_name", screen_text(name, max_length=self._config.max_text_length))

        email = (payload.respondent_email or "").strip()
        if email and not EMAIL_PATTERN.match(email):
            report.add_error("respondent_email", "must be a valid email address")
        phone = "".join((payload.respondent_phone or "").split())
        if phone and not PHONE_PATTERN.match(phone):
            report.add_error("respondent_phone", "must be a phone number in the format NNN-NNN-NNNN")

        meta = payload.metadata
        for attr in ("start_time", "completion_time"):
            value = getattr(meta, attr)
            if value is not None and not _parse_timestamp(value):
                report.add_error(f"metadata.{attr}", "must be an ISO-8601 timestamp")

    def _index_answers(
        self, answers: Sequence[Answer], catalog: QuestionCatalog, report: ValidationReport
    ) -> Dict[str, Answer]:
        index: Dict[str, Answer] = {}
        for answer in answers:
            field = f"answers.{answer.question_id}"
            if answer.question_id not in catalog:
                report.add_error(field, MSG_UNKNOWN_QUESTION, structural=True)
                continue
            if answer.question_id in index:
                if MSG_DUPLICATE_ANSWER not in report.errors.get(field, []):
                    report.add_error(field, MSG_DUPLICATE_ANSWER, structural=True)
                continue
            index[answer.question_id] = answer
        return index

    def completion_percentage(
        self, answers: Union[Mapping[str, Answer], Iterable[Answer]], catalog: QuestionCatalog
    ) -> int:
        """Weighted completion over currently applicable questions.

        70% of the score comes from the answered fraction of required
        questions and 30% from optional ones; an empty bucket counts as fully
        answered. Hidden conditional questions are not counted.
        """
        index = _answer_map(answers)
        required_total = required_done = optional_total = optional_done = 0
        for question in catalog:
            if not is_applicable(question, index):
                continue
            answered = question.id in index and not index[question.id].is_empty
            if question.required:
                required_total += 1
                required_done += int(answered)
            else:
                optional_total += 1
                optional_done += int(answered)
        required_frac = required_done / required_total if required_total else 1.0
        optional_frac = optional_done / optional_total if optional_total else 1.0
        score = math.floor((REQUIRED_WEIGHT * required_frac + OPTIONAL_WEIGHT * optional_frac) * 100 + 0.5)
        return max(0, min(100, int(score)))

    def validation_summary(
        self, answers: Union[Mapping[str, Answer], Iterable[Answer]], catalog: QuestionCatalog
    ) -> ValidationSummary:
        index = _answer_map(answers)
        applicable = [q for q in catalog if is_applicable(q, index)]
        answered = [q for q in applicable if q.id in index and not index[q.id].is_empty]
        required = [q for q in applicable if q.required]
        answered_ids = {q.id for q in answered}
        return ValidationSummary(
            total_questions=len(catalog),
            applicable_questions=len(applicable),
            answered_questions=len(answered),
            required_questions=len(required),
            required_answered=sum(1 for q in required if q.id in answered_ids),
            completion_percentage=self.completion_percentage(index, catalog),
            missing_required=[q.id for q in required if q.id not in answered_ids],
            conditional_questions=conditional_question_ids(catalog),
        )

    def validate_batch(
        self,
        items: Iterable[Tuple[Union[SubmissionPayload, dict], QuestionCatalog]],
        today: Optional[date] = None,
    ) -> List[ValidationReport]:
        """Validate several payloads independently; one report per item, in order.

        Items whose raw payload is malformed yield a report holding the
        structural errors instead of raising.
        """
        reports: List[ValidationReport] = []
        for raw, catalog in items:
            try:
                payload = parse_payload(raw)
            except StructuralError as exc:
                report = ValidationReport()
                for path, messages in exc.errors.items():
                    for message in messages:
                        report.add_error(path, message, structural=True)
                reports.append(report)
                continue
            reports.append(self.validate(payload, catalog, today=today))
        return reports


__all__ = ["SubmissionValidator", "REQUIRED_WEIGHT", "OPTIONAL_WEIGHT", "MSG_REQUIRED"]
