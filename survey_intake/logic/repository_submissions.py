"""SQL-backed record store.

Implements the RecordStore contract with SQLAlchemy Core `text()` statements
over the shared engine. Each method runs in its own short transaction, which
matches the single-row atomicity the pipeline assumes.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import text as sql_text
from sqlalchemy.engine import Engine

from survey_intake.db.base import get_engine
from survey_intake.models.records import RecordStatus, StoredAnswer, SubmissionRecord


logger = logging.getLogger(__name__)

_RECORD_COLUMNS = (
    "id, tenant_id, questionnaire_id, volunteer_id, respondent_name, respondent_email, "
    "respondent_phone, precinct_id, status, created_at, updated_at, completion_time_ms, metadata"
)


def _ts(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _record_params(record: SubmissionRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "tenant_id": record.tenant_id,
        "questionnaire_id": record.questionnaire_id,
        "volunteer_id": record.volunteer_id,
        "respondent_name": record.respondent_name,
        "respondent_email": record.respondent_email,
        "respondent_phone": record.respondent_phone,
        "precinct_id": record.precinct_id,
        "status": record.status,
        "created_at": _ts(record.created_at),
        "updated_at": _ts(record.updated_at),
        "completion_time_ms": record.completion_time_ms,
        "metadata": json.dumps(record.metadata, ensure_ascii=False, default=str),
    }


def _row_to_record(row: Any) -> SubmissionRecord:
    m = row._mapping
    meta_raw = m["metadata"]
    return SubmissionRecord(
        id=str(m["id"]),
        tenant_id=m["tenant_id"],
        questionnaire_id=str(m["questionnaire_id"]),
        volunteer_id=str(m["volunteer_id"]),
        respondent_name=m["respondent_name"],
        respondent_email=m["respondent_email"],
        respondent_phone=m["respondent_phone"],
        precinct_id=m["precinct_id"],
        status=m["status"],
        created_at=datetime.fromisoformat(str(m["created_at"])),
        updated_at=datetime.fromisoformat(str(m["updated_at"])),
        completion_time_ms=m["completion_time_ms"],
        metadata=json.loads(meta_raw) if meta_raw else {},
    )


class SqlRecordStore:
    def __init__(self, engine: Optional[Engine] = None) -> None:
        self._engine = engine or get_engine()

    @property
    def engine(self) -> Engine:
        return self._engine

    def insert_record(self, record: SubmissionRecord) -> SubmissionRecord:
        with self._engine.begin() as conn:
            conn.execute(
                sql_text(
                    f"INSERT INTO survey_responses ({_RECORD_COLUMNS}) VALUES ("
                    ":id, :tenant_id, :questionnaire_id, :volunteer_id, :respondent_name, :respondent_email, "
                    ":respondent_phone, :precinct_id, :status, :created_at, :updated_at, :completion_time_ms, :metadata)"
                ),
                _record_params(record),
            )
        logger.info("record_inserted id=%s status=%s", record.id, record.status)
        return record

    def update_record(self, record: SubmissionRecord) -> SubmissionRecord:
        with self._engine.begin() as conn:
            result = conn.execute(
                sql_text(
                    "UPDATE survey_responses SET tenant_id = :tenant_id, questionnaire_id = :questionnaire_id, "
                    "volunteer_id = :volunteer_id, respondent_name = :respondent_name, "
                    "respondent_email = :respondent_email, respondent_phone = :respondent_phone, "
                    "precinct_id = :precinct_id, status = :status, created_at = :created_at, "
                    "updated_at = :updated_at, completion_time_ms = :completion_time_ms, metadata = :metadata "
                    "WHERE id = :id"
                ),
                _record_params(record),
            )
        if result.rowcount == 0:
            raise KeyError(record.id)
        logger.info("record_updated id=%s status=%s", record.id, record.status)
        return record

    def delete_record(self, record_id: str) -> bool:
        with self._engine.begin() as conn:
            conn.execute(sql_text("DELETE FROM answers WHERE response_id = :id"), {"id": record_id})
            result = conn.execute(sql_text("DELETE FROM survey_responses WHERE id = :id"), {"id": record_id})
        deleted = result.rowcount > 0
        logger.info("record_deleted id=%s deleted=%s", record_id, deleted)
        return deleted

    def get_record(self, record_id: str) -> Optional[SubmissionRecord]:
        with self._engine.connect() as conn:
            row = conn.execute(
                sql_text(f"SELECT {_RECORD_COLUMNS} FROM survey_responses WHERE id = :id"),
                {"id": record_id},
            ).fetchone()
        return _row_to_record(row) if row is not None else None

    def find_records(
        self,
        *,
        volunteer_id: str,
        questionnaire_id: Optional[str] = None,
        status: Optional[RecordStatus] = None,
        respondent_name: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> List[SubmissionRecord]:
        clauses = ["volunteer_id = :volunteer_id"]
        params: Dict[str, Any] = {"volunteer_id": volunteer_id}
        for column, value in (
            ("questionnaire_id", questionnaire_id),
            ("status", status),
            ("respondent_name", respondent_name),
            ("tenant_id", tenant_id),
        ):
            if value is not None:
                clauses.append(f"{column} = :{column}")
                params[column] = value
        stmt = (
            f"SELECT {_RECORD_COLUMNS} FROM survey_responses WHERE "
            + " AND ".join(clauses)
            + " ORDER BY updated_at DESC"
        )
        with self._engine.connect() as conn:
            rows = conn.execute(sql_text(stmt), params).fetchall()
        return [_row_to_record(r) for r in rows]

    def insert_answers(self, record_id: str, answers: Sequence[StoredAnswer]) -> int:
        if not answers:
            return 0
        with self._engine.begin() as conn:
            start = conn.execute(
                sql_text("SELECT COALESCE(MAX(position), -1) + 1 FROM answers WHERE response_id = :id"),
                {"id": record_id},
            ).scalar_one()
            conn.execute(
                sql_text(
                    "INSERT INTO answers (response_id, position, question_id, answer_value, answer_numeric, answer_json) "
                    "VALUES (:response_id, :position, :question_id, :answer_value, :answer_numeric, :answer_json)"
                ),
                [
                    {
                        "response_id": record_id,
                        "position": int(start) + i,
                        "question_id": a.question_id,
                        "answer_value": a.answer_value,
                        "answer_numeric": a.answer_numeric,
                        "answer_json": json.dumps(a.answer_json, ensure_ascii=False) if a.answer_json is not None else None,
                    }
                    for i, a in enumerate(answers)
                ],
            )
        return len(answers)

    def delete_answers(self, record_id: str) -> int:
        with self._engine.begin() as conn:
            result = conn.execute(sql_text("DELETE FROM answers WHERE response_id = :id"), {"id": record_id})
        return int(result.rowcount or 0)

    def list_answers(self, record_id: str) -> List[StoredAnswer]:
        with self._engine.connect() as conn:
            rows = conn.execute(
                sql_text(
                    "SELECT question_id, answer_value, answer_numeric, answer_json FROM answers "
                    "WHERE response_id = :id ORDER BY position"
                ),
                {"id": record_id},
            ).fetchall()
        out: List[StoredAnswer] = []
        for r in rows:
            m = r._mapping
            out.append(
                StoredAnswer(
                    record_id=record_id,
                    question_id=str(m["question_id"]),
                    answer_value=m["answer_value"],
                    answer_numeric=float(m["answer_numeric"]) if m["answer_numeric"] is not None else None,
                    answer_json=json.loads(m["answer_json"]) if m["answer_json"] else None,
                )
            )
        return out


__all__ = ["SqlRecordStore"]
