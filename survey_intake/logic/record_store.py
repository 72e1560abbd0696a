"""Record store contract and the in-memory implementation.

The pipeline only needs single-row atomic operations: insert, update and
delete of records, plus insert/delete of the answer rows linked to a record.
No multi-statement transaction is assumed, which is why the pipeline carries
its own compensating delete.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Protocol, Sequence

from survey_intake.models.records import RecordStatus, StoredAnswer, SubmissionRecord


class RecordStore(Protocol):
    def insert_record(self, record: SubmissionRecord) -> SubmissionRecord: ...

    def update_record(self, record: SubmissionRecord) -> SubmissionRecord: ...

    def delete_record(self, record_id: str) -> bool: ...

    def get_record(self, record_id: str) -> Optional[SubmissionRecord]: ...

    def find_records(
        self,
        *,
        volunteer_id: str,
        questionnaire_id: Optional[str] = None,
        status: Optional[RecordStatus] = None,
        respondent_name: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> List[SubmissionRecord]: ...

    def insert_answers(self, record_id: str, answers: Sequence[StoredAnswer]) -> int: ...

    def delete_answers(self, record_id: str) -> int: ...

    def list_answers(self, record_id: str) -> List[StoredAnswer]: ...


class InMemoryRecordStore:
    """Thread-safe dict-backed store; copies on the way in and out."""

    def __init__(self) -> None:
        self._records: Dict[str, SubmissionRecord] = {}
        self._answers: Dict[str, List[StoredAnswer]] = {}
        self._lock = threading.Lock()

    def insert_record(self, record: SubmissionRecord) -> SubmissionRecord:
        with self._lock:
            if record.id in self._records:
                raise ValueError(f"record {record.id} already exists")
            self._records[record.id] = record.model_copy(deep=True)
        return record

    def update_record(self, record: SubmissionRecord) -> SubmissionRecord:
        with self._lock:
            if record.id not in self._records:
                raise KeyError(record.id)
            self._records[record.id] = record.model_copy(deep=True)
        return record

    def delete_record(self, record_id: str) -> bool:
        with self._lock:
            self._answers.pop(record_id, None)
            return self._records.pop(record_id, None) is not None

    def get_record(self, record_id: str) -> Optional[SubmissionRecord]:
        with self._lock:
            rec = self._records.get(record_id)
            return rec.model_copy(deep=True) if rec is not None else None

    def find_records(
        self,
        *,
        volunteer_id: str,
        questionnaire_id: Optional[str] = None,
        status: Optional[RecordStatus] = None,
        respondent_name: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> List[SubmissionRecord]:
        with self._lock:
            rows = [
                r.model_copy(deep=True)
                for r in self._records.values()
                if r.volunteer_id == volunteer_id
                and (questionnaire_id is None or r.questionnaire_id == questionnaire_id)
                and (status is None or r.status == status)
                and (respondent_name is None or r.respondent_name == respondent_name)
                and (tenant_id is None or r.tenant_id == tenant_id)
            ]
        rows.sort(key=lambda r: r.updated_at, reverse=True)
        return rows

    def insert_answers(self, record_id: str, answers: Sequence[StoredAnswer]) -> int:
        with self._lock:
            if record_id not in self._records:
                raise KeyError(record_id)
            self._answers.setdefault(record_id, []).extend(a.model_copy() for a in answers)
        return len(answers)

    def delete_answers(self, record_id: str) -> int:
        with self._lock:
            return len(self._answers.pop(record_id, []))

    def list_answers(self, record_id: str) -> List[StoredAnswer]:
        with self._lock:
            return [a.model_copy() for a in self._answers.get(record_id, [])]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._answers.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


__all__ = ["RecordStore", "InMemoryRecordStore"]
