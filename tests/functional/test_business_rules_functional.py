"""Functional tests for cross-field business rules."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict

from survey_intake.config import BusinessRuleSettings
from survey_intake.logic.business_rules import (
    BusinessRuleEngine,
    RuleContext,
    age_consistency,
    dependent_field_completeness,
    historical_eligibility,
    no_contact_method,
    parse_age_bracket,
)
from survey_intake.models.submission import Answer


SETTINGS = BusinessRuleSettings()
CTX = RuleContext(today=date(2024, 1, 1))


def _answers(**values: Any) -> Dict[str, Answer]:
    return {qid: Answer(question_id=qid, value=v) for qid, v in values.items()}


def test_parse_age_bracket():
    assert parse_age_bracket("18-25") == (18, 25)
    assert parse_age_bracket(" 56 + ") == (56, None)
    assert parse_age_bracket("adult") is None


def test_age_outside_bracket_is_an_error():
    messages = age_consistency(_answers(birth_date="2010-01-01", age_range="18-25"), CTX, SETTINGS)
    assert messages == ["computed age 14 does not fall in the selected age range 18-25"]


def test_age_inside_bracket_and_open_bracket():
    assert age_consistency(_answers(birth_date="1990-05-10", age_range="26-35"), CTX, SETTINGS) == []
    assert age_consistency(_answers(birth_date="1950-05-10", age_range="56+"), CTX, SETTINGS) == []


def test_age_rule_skips_missing_or_unparsable_inputs():
    assert age_consistency(_answers(age_range="18-25"), CTX, SETTINGS) == []
    assert age_consistency(_answers(birth_date="not a date", age_range="18-25"), CTX, SETTINGS) == []
    assert age_consistency(_answers(birth_date="2010-01-01", age_range="young"), CTX, SETTINGS) == []


def test_dependent_field_required_when_gate_is_yes():
    messages = dependent_field_completeness(_answers(leans_to_party="si"), CTX, SETTINGS)
    assert messages == ["which_party is required when leans_to_party is answered yes"]
    sentinel = dependent_field_completeness(_answers(leans_to_party="yes", which_party="n/a"), CTX, SETTINGS)
    assert sentinel == ["which_party is required when leans_to_party is answered yes"]
    assert dependent_field_completeness(_answers(leans_to_party="si", which_party="PNP"), CTX, SETTINGS) == []


def test_dependent_field_must_be_empty_when_gate_is_no():
    messages = dependent_field_completeness(_answers(leans_to_party="no", which_party="PNP"), CTX, SETTINGS)
    assert messages == ["which_party must be empty when leans_to_party is answered no"]
    assert dependent_field_completeness(_answers(leans_to_party="no", which_party="N/A"), CTX, SETTINGS) == []
    assert dependent_field_completeness(_answers(leans_to_party="no"), CTX, SETTINGS) == []


def test_historical_eligibility_uses_age_at_end_of_election_year():
    # Born 1999-06-01: 17 at the end of 2016, 21 at the end of 2020
    answers = _answers(birth_date="1999-06-01", voted_2016="si", voted_2020="si")
    assert historical_eligibility(answers, CTX, SETTINGS) == [
        "respondent was 17 in 2016 and could not have voted (voted_2016)"
    ]
    # Turns 18 on Dec 31 of the election year
    eligible = _answers(birth_date="1998-12-31", voted_2016="si")
    assert historical_eligibility(eligible, CTX, SETTINGS) == []


def test_historical_eligibility_ignores_future_years_and_no_answers():
    answers = _answers(birth_date="2010-01-01", voted_2024="si", voted_2016="no")
    before_election = RuleContext(today=date(2023, 6, 1))
    assert historical_eligibility(answers, before_election, SETTINGS) == []


def test_no_contact_method_warning():
    assert no_contact_method({}, CTX, SETTINGS) == ["no contact method was provided"]
    with_email = RuleContext(today=CTX.today, respondent_email="a@b.co")
    assert no_contact_method({}, with_email, SETTINGS) == []
    assert no_contact_method(_answers(phone="787-555-1234"), CTX, SETTINGS) == []
    no_contact_questions = RuleContext(today=CTX.today, question_ids=frozenset({"name"}))
    assert no_contact_method({}, no_contact_questions, SETTINGS) == []


def test_engine_splits_errors_and_warnings_and_runs_every_rule():
    answers = _answers(
        birth_date="2010-01-01",
        age_range="18-25",
        leans_to_party="si",
        needs_transportation="si",
        has_transportation="si",
        voting_frequency="nunca",
        intends_to_vote="si",
    )
    outcome = BusinessRuleEngine().evaluate(answers, context=CTX)
    assert set(outcome.errors) == {"age_consistency", "dependent_field_completeness"}
    assert set(outcome.warnings) == {"transportation_consistency", "no_contact_method", "never_voted_but_intends"}
    assert outcome.is_clean is False


def test_engine_clean_outcome():
    answers = _answers(birth_date="1990-05-10", age_range="26-35", phone="787-555-1234")
    outcome = BusinessRuleEngine().evaluate(answers, context=CTX)
    assert outcome.is_clean


def test_rule_question_ids_are_configurable():
    settings = BusinessRuleSettings(birth_date_question="dob", age_range_question="bracket", dependent_fields={})
    answers = _answers(dob="2010-01-01", bracket="46-55", phone="787-555-1234")
    outcome = BusinessRuleEngine(settings).evaluate(answers, context=CTX)
    assert list(outcome.errors) == ["age_consistency"]
