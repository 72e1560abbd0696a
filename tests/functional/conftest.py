from __future__ import annotations

"""Functional test fixtures.

Tests run against the in-memory record store and a fixed validation date so
age checks are deterministic. The executor never really sleeps; retry delays
are recorded instead so backoff can be asserted.
"""

import json
import pathlib
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from survey_intake.logic.idempotency import IdempotencyCache
from survey_intake.logic.record_store import InMemoryRecordStore
from survey_intake.logic.resilience import ResilientExecutor
from survey_intake.logic.submission_pipeline import SubmissionPipeline
from survey_intake.logic.submission_validation import SubmissionValidator
from survey_intake.models.questionnaire import QuestionCatalog


_ROOT = pathlib.Path(__file__).resolve().parents[1]
QUESTIONNAIRE_FILE = _ROOT / "data" / "voter_consultation_questionnaire.json"

VALIDATION_DAY = date(2024, 1, 1)


class FakeMonotonic:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWallClock:
    """Manually advanced UTC wall clock for record timestamps."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordedSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def questionnaire_dict() -> Dict[str, Any]:
    return json.loads(QUESTIONNAIRE_FILE.read_text(encoding="utf-8"))


@pytest.fixture
def catalog(questionnaire_dict: Dict[str, Any]) -> QuestionCatalog:
    return QuestionCatalog.from_dict(questionnaire_dict)


@pytest.fixture
def make_payload():
    """Factory for a complete, valid final payload; keyword overrides replace fields.

    ``answers`` overrides merge by question id; a value of None drops the answer.
    """

    def _make(answers: Optional[Dict[str, Any]] = None, **fields: Any) -> Dict[str, Any]:
        base_answers: Dict[str, Any] = {
            "name": "Maria Lopez",
            "gender": "F",
            "birth_date": "1990-05-10",
            "age_range": "26-35",
            "phone": "787-555-1234",
            "family_voters_count": 3,
            "leans_to_party": "si",
            "which_party": "PPD",
            "top_5_priorities": ["health", "education"],
        }
        for qid, value in (answers or {}).items():
            if value is None:
                base_answers.pop(qid, None)
            else:
                base_answers[qid] = value
        payload: Dict[str, Any] = {
            "questionnaire_id": "ppd-2024",
            "respondent_name": "Maria Lopez",
            "respondent_phone": "787-555-1234",
            "answers": [{"question_id": qid, "answer_value": value} for qid, value in base_answers.items()],
            "metadata": {
                "start_time": "2024-01-01T10:00:00Z",
                "completion_time": "2024-01-01T10:12:30Z",
                "device_info": {"platform": "android"},
            },
        }
        payload.update(fields)
        return payload

    return _make


@pytest.fixture
def validator() -> SubmissionValidator:
    return SubmissionValidator(today=lambda: VALIDATION_DAY)


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def wall_clock() -> FakeWallClock:
    return FakeWallClock()


@pytest.fixture
def recorded_sleep() -> RecordedSleep:
    return RecordedSleep()


@pytest.fixture
def executor(monotonic: FakeMonotonic, recorded_sleep: RecordedSleep) -> ResilientExecutor:
    return ResilientExecutor(
        cache=IdempotencyCache(ttl_seconds=600, clock=monotonic),
        sleep=recorded_sleep,
        clock=monotonic,
    )


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def pipeline(
    store: InMemoryRecordStore,
    validator: SubmissionValidator,
    executor: ResilientExecutor,
    wall_clock: FakeWallClock,
) -> SubmissionPipeline:
    return SubmissionPipeline(store, validator, executor, clock=wall_clock)
