"""Draft and final submission lifecycle.

Records move ``absent -> draft -> completed`` with ``draft -> draft`` for
updates; ``completed`` is terminal. Every store call runs in a worker thread
and every write goes through the ResilientExecutor.

The store only guarantees single-row atomicity, so finalizing a new record
is two-phase: the record row is inserted, then its answers. If the answer
phase fails, the just-created record is removed by a compensating delete with
its own bounded retry budget. A failed compensation is logged and never
replaces the original error.
"""

from __future__ import annotations

import functools
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional, Sequence, Union

import anyio

from survey_intake.config import DraftConfig
from survey_intake.logic.answer_canonical import storage_columns
from survey_intake.logic.errors import (
    DuplicateSubmission,
    RecordImmutable,
    RecordNotFound,
    StructuralError,
    SubmissionError,
    ValidationFailed,
)
from survey_intake.logic.idempotency import stable_payload_hash
from survey_intake.logic.payload_shape import parse_payload
from survey_intake.logic.record_store import RecordStore
from survey_intake.logic.resilience import (
    COMPENSATION_RETRY,
    DRAFT_RETRY,
    SUBMISSION_RETRY,
    ResilientExecutor,
    RetryOptions,
)
from survey_intake.logic.submission_validation import SubmissionValidator
from survey_intake.models.questionnaire import QuestionCatalog
from survey_intake.models.records import (
    BatchItemResult,
    CleanupResult,
    PipelineResult,
    RecordWithAnswers,
    StoredAnswer,
    SubmissionRecord,
)
from survey_intake.models.submission import SubmissionPayload, ValidationReport


logger = logging.getLogger(__name__)

ANSWER_INSERT_BATCH_SIZE = 25
MAX_BATCH_ITEMS = 50
BATCH_CONCURRENCY = 5

RawPayload = Union[SubmissionPayload, Dict[str, Any]]
CatalogLookup = Union[Mapping[str, QuestionCatalog], Callable[[str], Optional[QuestionCatalog]]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


def _completion_time_ms(payload: SubmissionPayload) -> Optional[int]:
    start = _parse_iso(payload.metadata.start_time)
    end = _parse_iso(payload.metadata.completion_time)
    if start is None or end is None:
        return None
    try:
        return int((end - start).total_seconds() * 1000)
    except TypeError:
        # naive/aware mix
        return None


def _structural_subset(report: ValidationReport) -> Dict[str, List[str]]:
    return {path: list(report.errors.get(path, [])) for path in report.structural}


def _merge_messages(*sources: Mapping[str, List[str]]) -> Dict[str, List[str]]:
    out: Dict[str, List[str]] = {}
    for src in sources:
        for path, messages in src.items():
            bucket = out.setdefault(path, [])
            bucket.extend(m for m in messages if m not in bucket)
    return out


def _chunks(rows: Sequence[StoredAnswer], size: int) -> List[Sequence[StoredAnswer]]:
    return [rows[i : i + size] for i in range(0, len(rows), size)]


def to_stored_answers(record_id: str, payload: SubmissionPayload) -> List[StoredAnswer]:
    """Map non-empty payload answers onto storage rows, preserving order."""
    rows: List[StoredAnswer] = []
    for answer in payload.answers:
        if answer.is_empty:
            continue
        value, numeric, as_json = storage_columns(answer.value)
        rows.append(
            StoredAnswer(
                record_id=record_id,
                question_id=answer.question_id,
                answer_value=value,
                answer_numeric=numeric,
                answer_json=as_json,
            )
        )
    return rows


class _DraftContent(NamedTuple):
    payload: SubmissionPayload
    warnings: Dict[str, List[str]]
    completion: int
    payload_hash: str


def _client_id(raw: RawPayload) -> Optional[str]:
    if isinstance(raw, SubmissionPayload):
        return raw.client_id
    return raw.get("client_id") if isinstance(raw, dict) else None


class SubmissionPipeline:
    def __init__(
        self,
        store: RecordStore,
        validator: Optional[SubmissionValidator] = None,
        executor: Optional[ResilientExecutor] = None,
        drafts: Optional[DraftConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
        answer_batch_size: int = ANSWER_INSERT_BATCH_SIZE,
    ) -> None:
        self._store = store
        self._validator = validator or SubmissionValidator()
        self._executor = executor or ResilientExecutor()
        self._drafts = drafts or DraftConfig()
        self._clock = clock or _utcnow
        self._batch_size = max(1, int(answer_batch_size))
        self._last_ts: Optional[datetime] = None

    @property
    def store(self) -> RecordStore:
        return self._store

    @property
    def executor(self) -> ResilientExecutor:
        return self._executor

    @property
    def validator(self) -> SubmissionValidator:
        return self._validator

    async def _call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        return await anyio.to_thread.run_sync(functools.partial(fn, *args, **kwargs))

    def _now(self, after: Optional[datetime] = None) -> datetime:
        """Current time, strictly later than the previous stamp and ``after``."""
        now = self._clock()
        floor = max((t for t in (self._last_ts, after) if t is not None), default=None)
        if floor is not None and now <= floor:
            now = floor + timedelta(microseconds=1)
        self._last_ts = now
        return now

    def _record_metadata(self, payload: SubmissionPayload, completion: int, answer_count: int) -> Dict[str, Any]:
        meta: Dict[str, Any] = {
            "completion_percentage": completion,
            "answer_count": answer_count,
            "start_time": payload.metadata.start_time,
            "completion_time": payload.metadata.completion_time,
            "device_info": payload.metadata.device_info,
        }
        if payload.metadata.location is not None:
            meta["location"] = payload.metadata.location.model_dump()
        if payload.client_id:
            meta["client_id"] = payload.client_id
        return meta

    async def _replace_answers(self, record_id: str, rows: Sequence[StoredAnswer]) -> int:
        """Delete-then-reinsert the answer set; safe to repeat on retry."""
        await self._call(self._store.delete_answers, record_id)
        for chunk in _chunks(rows, self._batch_size):
            await self._call(self._store.insert_answers, record_id, chunk)
        return len(rows)

    # ------------------------------------------------------------------ drafts

    def _prepare_draft(self, payload: RawPayload, catalog: QuestionCatalog) -> _DraftContent:
        parsed = parse_payload(payload)
        report = self._validator.validate(parsed, catalog, is_draft=True)
        if report.has_structural_errors:
            raise StructuralError("draft payload is structurally invalid", _structural_subset(report))
        return _DraftContent(
            payload=parsed,
            warnings=_merge_messages(report.warnings, report.non_structural_errors()),
            completion=self._validator.completion_percentage(parsed.answers, catalog),
            payload_hash=stable_payload_hash(parsed.model_dump(mode="json")),
        )

    async def save_draft(
        self,
        payload: RawPayload,
        catalog: QuestionCatalog,
        *,
        volunteer_id: str,
        tenant_id: Optional[str] = None,
    ) -> PipelineResult:
        """Create or update the volunteer's draft for this questionnaire.

        Only structural problems block a draft; every other finding is
        returned as a warning and the save goes ahead.
        """
        content = self._prepare_draft(payload, catalog)
        existing = await self._call(
            self._store.find_records,
            volunteer_id=volunteer_id,
            questionnaire_id=content.payload.questionnaire_id,
            status="draft",
            tenant_id=tenant_id,
        )
        current: Optional[SubmissionRecord] = existing[0] if existing else None
        return await self._write_draft(content, catalog, current, volunteer_id, tenant_id)

    async def update_draft(
        self,
        record_id: str,
        payload: RawPayload,
        catalog: QuestionCatalog,
        *,
        volunteer_id: str,
        tenant_id: Optional[str] = None,
    ) -> PipelineResult:
        """Replace the content of one specific draft.

        Completed records are rejected before anything is written.
        """
        record = await self._owned_record(record_id, volunteer_id)
        if record.is_final:
            logger.warning("draft_update_rejected record_id=%s status=%s", record_id, record.status)
            raise RecordImmutable(record_id, "updated")
        content = self._prepare_draft(payload, catalog)
        if content.payload.questionnaire_id != record.questionnaire_id:
            raise StructuralError(
                "payload targets a different questionnaire than the draft",
                {"questionnaire_id": [f"expected {record.questionnaire_id}"]},
            )
        return await self._write_draft(content, catalog, record, volunteer_id, tenant_id)

    async def _write_draft(
        self,
        content: _DraftContent,
        catalog: QuestionCatalog,
        current: Optional[SubmissionRecord],
        volunteer_id: str,
        tenant_id: Optional[str],
    ) -> PipelineResult:
        parsed = content.payload
        if current is not None:
            record_id = current.id
            key: Optional[str] = f"draft:{record_id}:{content.payload_hash}"
        else:
            record_id = uuid.uuid4().hex
            key = None

        rows = to_stored_answers(record_id, parsed)
        metadata = self._record_metadata(parsed, content.completion, len(rows))
        metadata["payload_hash"] = content.payload_hash
        ran = False

        async def _write() -> PipelineResult:
            nonlocal ran
            ran = True
            stored = await self._call(self._store.get_record, record_id)
            if stored is not None and stored.is_final:
                raise RecordImmutable(record_id, "updated")
            created_at = stored.created_at if stored is not None else self._now()
            record = SubmissionRecord(
                id=record_id,
                tenant_id=tenant_id if tenant_id is not None else catalog.tenant_id,
                questionnaire_id=parsed.questionnaire_id,
                volunteer_id=volunteer_id,
                respondent_name=(parsed.respondent_name or "").strip() or None,
                respondent_email=parsed.respondent_email,
                respondent_phone=parsed.respondent_phone,
                precinct_id=parsed.precinct_id,
                status="draft",
                created_at=created_at,
                updated_at=self._now(after=stored.updated_at if stored is not None else created_at),
                completion_time_ms=None,
                metadata=metadata,
            )
            if stored is None:
                await self._call(self._store.insert_record, record)
            else:
                await self._call(self._store.update_record, record)
            await self._replace_answers(record_id, rows)
            return PipelineResult(
                id=record_id,
                status="draft",
                completion_percentage=content.completion,
                answer_count=len(rows),
                warnings=content.warnings,
            )

        result: PipelineResult = await self._executor.execute(_write, DRAFT_RETRY, idempotency_key=key)
        if not ran:
            if current is not None and current.metadata.get("payload_hash") != content.payload_hash:
                # Cached result belongs to an earlier revision of this draft
                result = await self._executor.execute(_write, DRAFT_RETRY)
            else:
                result = result.model_copy(update={"replayed": True})
        logger.info(
            "draft_saved record_id=%s update=%s completion=%s warnings=%s replayed=%s",
            result.id,
            current is not None,
            result.completion_percentage,
            len(result.warnings),
            result.replayed,
        )
        return result

    async def delete_draft(self, record_id: str, *, volunteer_id: str) -> bool:
        record = await self._owned_record(record_id, volunteer_id)
        if record.is_final:
            logger.warning("draft_delete_rejected record_id=%s status=%s", record_id, record.status)
            raise RecordImmutable(record_id, "deleted")

        async def _delete() -> bool:
            return bool(await self._call(self._store.delete_record, record_id))

        deleted = await self._executor.execute(_delete, DRAFT_RETRY)
        logger.info("draft_deleted record_id=%s deleted=%s", record_id, deleted)
        return deleted

    async def cleanup_drafts(
        self,
        *,
        volunteer_id: str,
        older_than_days: Optional[int] = None,
        keep_recent: Optional[int] = None,
        questionnaire_id: Optional[str] = None,
        dry_run: bool = False,
        tenant_id: Optional[str] = None,
    ) -> CleanupResult:
        """Remove stale drafts, keeping the most recent ones per questionnaire.

        Candidates are drafts last updated before the cutoff. Within each
        questionnaire the ``keep_recent`` newest candidates survive.
        """
        days = self._drafts.cleanup_older_than_days if older_than_days is None else int(older_than_days)
        keep = self._drafts.keep_recent if keep_recent is None else int(keep_recent)
        if days < 0 or keep < 0:
            raise StructuralError(
                "cleanup criteria must be non-negative",
                {"cleanup": ["older_than_days and keep_recent must be >= 0"]},
            )
        cutoff = self._clock() - timedelta(days=days)
        drafts: List[SubmissionRecord] = await self._call(
            self._store.find_records,
            volunteer_id=volunteer_id,
            questionnaire_id=questionnaire_id,
            status="draft",
            tenant_id=tenant_id,
        )
        candidates = [d for d in drafts if d.updated_at < cutoff]
        by_questionnaire: Dict[str, List[SubmissionRecord]] = {}
        for draft in candidates:
            by_questionnaire.setdefault(draft.questionnaire_id, []).append(draft)

        to_delete: List[str] = []
        kept = 0
        for group in by_questionnaire.values():
            group.sort(key=lambda r: r.updated_at, reverse=True)
            kept += len(group[:keep])
            to_delete.extend(r.id for r in group[keep:])

        deleted: List[str] = []
        if not dry_run:
            for record_id in to_delete:
                async def _delete(rid: str = record_id) -> bool:
                    return bool(await self._call(self._store.delete_record, rid))

                if await self._executor.execute(_delete, DRAFT_RETRY):
                    deleted.append(record_id)

        logger.info(
            "drafts_cleanup volunteer_id=%s found=%s deleted=%s kept=%s dry_run=%s",
            volunteer_id,
            len(candidates),
            len(deleted),
            kept,
            dry_run,
        )
        return CleanupResult(
            drafts_found=len(candidates),
            drafts_deleted=len(deleted),
            kept_recent=kept,
            dry_run=dry_run,
            deleted_ids=to_delete if dry_run else deleted,
        )

    # ------------------------------------------------------------------ final

    async def finalize(
        self,
        payload: RawPayload,
        catalog: QuestionCatalog,
        *,
        volunteer_id: str,
        tenant_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> PipelineResult:
        """Validate in final mode and persist a completed record.

        With ``idempotency_key``, a repeated call inside the cache TTL returns
        the first call's result without touching the store again.
        """
        parsed = parse_payload(payload)
        if idempotency_key:
            ran = False

            async def _once() -> PipelineResult:
                nonlocal ran
                ran = True
                return await self._finalize(parsed, catalog, volunteer_id=volunteer_id, tenant_id=tenant_id)

            result = await self._executor.execute(
                _once,
                RetryOptions(max_attempts=1),
                idempotency_key=f"finalize:{volunteer_id}:{idempotency_key}",
            )
            return result if ran else result.model_copy(update={"replayed": True})
        return await self._finalize(parsed, catalog, volunteer_id=volunteer_id, tenant_id=tenant_id)

    async def _finalize(
        self,
        payload: SubmissionPayload,
        catalog: QuestionCatalog,
        *,
        volunteer_id: str,
        tenant_id: Optional[str],
    ) -> PipelineResult:
        report = self._validator.validate(payload, catalog, is_draft=False)
        if not report.is_valid:
            logger.info(
                "submission_finalize_rejected questionnaire_id=%s fields=%s",
                payload.questionnaire_id,
                sorted(report.errors),
            )
            raise ValidationFailed("submission failed validation", report)

        name = (payload.respondent_name or "").strip()
        duplicates = await self._call(
            self._store.find_records,
            volunteer_id=volunteer_id,
            questionnaire_id=payload.questionnaire_id,
            status="completed",
            respondent_name=name,
            tenant_id=tenant_id,
        )
        if duplicates:
            logger.warning(
                "submission_duplicate questionnaire_id=%s existing=%s", payload.questionnaire_id, duplicates[0].id
            )
            raise DuplicateSubmission(duplicates[0].id)

        drafts = await self._call(
            self._store.find_records,
            volunteer_id=volunteer_id,
            questionnaire_id=payload.questionnaire_id,
            status="draft",
            tenant_id=tenant_id,
        )
        completion = self._validator.completion_percentage(payload.answers, catalog)
        if drafts:
            return await self._promote_draft(drafts[0], payload, catalog, completion, name, tenant_id)
        return await self._insert_final(payload, catalog, completion, name, volunteer_id, tenant_id)

    def _final_record(
        self,
        base: Optional[SubmissionRecord],
        record_id: str,
        payload: SubmissionPayload,
        catalog: QuestionCatalog,
        completion: int,
        answer_count: int,
        name: str,
        volunteer_id: str,
        tenant_id: Optional[str],
    ) -> SubmissionRecord:
        created_at = base.created_at if base is not None else self._now()
        return SubmissionRecord(
            id=record_id,
            tenant_id=tenant_id if tenant_id is not None else catalog.tenant_id,
            questionnaire_id=payload.questionnaire_id,
            volunteer_id=volunteer_id,
            respondent_name=name,
            respondent_email=payload.respondent_email,
            respondent_phone=payload.respondent_phone,
            precinct_id=payload.precinct_id,
            status="completed",
            created_at=created_at,
            updated_at=self._now(after=base.updated_at if base is not None else created_at),
            completion_time_ms=_completion_time_ms(payload),
            metadata=self._record_metadata(payload, completion, answer_count),
        )

    async def _promote_draft(
        self,
        draft: SubmissionRecord,
        payload: SubmissionPayload,
        catalog: QuestionCatalog,
        completion: int,
        name: str,
        tenant_id: Optional[str],
    ) -> PipelineResult:
        rows = to_stored_answers(draft.id, payload)

        async def _answers() -> int:
            return await self._replace_answers(draft.id, rows)

        await self._executor.execute(_answers, SUBMISSION_RETRY)

        # Status flips last so a failure above leaves a draft, never a half-written final record
        record = self._final_record(
            draft, draft.id, payload, catalog, completion, len(rows), name, draft.volunteer_id, tenant_id
        )

        async def _flip() -> SubmissionRecord:
            return await self._call(self._store.update_record, record)

        await self._executor.execute(_flip, SUBMISSION_RETRY)
        logger.info("submission_finalize_ok record_id=%s promoted_draft=true answers=%s", draft.id, len(rows))
        return PipelineResult(id=draft.id, status="completed", completion_percentage=completion, answer_count=len(rows))

    async def _insert_final(
        self,
        payload: SubmissionPayload,
        catalog: QuestionCatalog,
        completion: int,
        name: str,
        volunteer_id: str,
        tenant_id: Optional[str],
    ) -> PipelineResult:
        record_id = uuid.uuid4().hex
        rows = to_stored_answers(record_id, payload)
        record = self._final_record(
            None, record_id, payload, catalog, completion, len(rows), name, volunteer_id, tenant_id
        )

        async def _insert_record() -> None:
            if await self._call(self._store.get_record, record_id) is None:
                await self._call(self._store.insert_record, record)

        await self._executor.execute(_insert_record, SUBMISSION_RETRY)

        async def _answers() -> int:
            return await self._replace_answers(record_id, rows)

        try:
            await self._executor.execute(_answers, SUBMISSION_RETRY)
        except Exception:
            logger.error("submission_answers_failed record_id=%s compensating=true", record_id, exc_info=True)
            await self._compensate(record_id)
            raise
        logger.info("submission_finalize_ok record_id=%s promoted_draft=false answers=%s", record_id, len(rows))
        return PipelineResult(id=record_id, status="completed", completion_percentage=completion, answer_count=len(rows))

    async def _compensate(self, record_id: str) -> None:
        async def _delete() -> bool:
            return bool(await self._call(self._store.delete_record, record_id))

        try:
            await self._executor.execute(_delete, COMPENSATION_RETRY)
        except Exception:
            logger.error("submission_compensation_failed record_id=%s", record_id, exc_info=True)
        else:
            logger.info("submission_compensated record_id=%s", record_id)

    # ------------------------------------------------------------------ reads

    async def _owned_record(self, record_id: str, volunteer_id: str) -> SubmissionRecord:
        record = await self._call(self._store.get_record, record_id)
        if record is None or record.volunteer_id != volunteer_id:
            raise RecordNotFound(record_id)
        return record

    async def get_record(self, record_id: str, *, volunteer_id: str) -> RecordWithAnswers:
        record = await self._owned_record(record_id, volunteer_id)
        answers = await self._call(self._store.list_answers, record_id)
        return RecordWithAnswers(record=record, answers=answers)

    # ------------------------------------------------------------------ batch

    async def submit_batch(
        self,
        items: Sequence[RawPayload],
        catalogs: CatalogLookup,
        *,
        volunteer_id: str,
        tenant_id: Optional[str] = None,
    ) -> List[BatchItemResult]:
        """Process an offline-sync batch; one result per item, in input order.

        Items already stored under the same ``client_id`` are reported as
        successful duplicates. A failing item never aborts the others.
        """
        if len(items) > MAX_BATCH_ITEMS:
            raise StructuralError(
                f"batch too large: at most {MAX_BATCH_ITEMS} submissions per batch",
                {"submissions": [f"at most {MAX_BATCH_ITEMS} items allowed"]},
            )
        lookup = catalogs.get if isinstance(catalogs, Mapping) else catalogs
        results: List[Optional[BatchItemResult]] = [None] * len(items)
        limiter = anyio.CapacityLimiter(BATCH_CONCURRENCY)

        async def _run(index: int, raw: RawPayload) -> None:
            async with limiter:
                results[index] = await self._submit_one(raw, lookup, volunteer_id, tenant_id)

        async with anyio.create_task_group() as tg:
            for index, raw in enumerate(items):
                tg.start_soon(_run, index, raw)

        out = [
            r
            if r is not None
            else BatchItemResult(
                client_id=_client_id(raw), success=False, error_code="SERVER_ERROR", error="item did not complete"
            )
            for r, raw in zip(results, items)
        ]
        logger.info(
            "submission_batch_done volunteer_id=%s total=%s ok=%s",
            volunteer_id,
            len(out),
            sum(1 for r in out if r.success),
        )
        return out

    async def _submit_one(
        self,
        raw: RawPayload,
        lookup: Callable[[str], Optional[QuestionCatalog]],
        volunteer_id: str,
        tenant_id: Optional[str],
    ) -> BatchItemResult:
        client_id = _client_id(raw)
        try:
            payload = parse_payload(raw)
            catalog = lookup(payload.questionnaire_id)
            if catalog is None or not catalog.questionnaire.is_active:
                return BatchItemResult(
                    client_id=client_id,
                    success=False,
                    error_code="INVALID_QUESTIONNAIRE",
                    error=f"questionnaire {payload.questionnaire_id} not found or inactive",
                )
            existing = await self._find_by_client_id(payload, volunteer_id, tenant_id)
            if existing is not None:
                return BatchItemResult(
                    client_id=client_id,
                    success=True,
                    record_id=existing.id,
                    status=existing.status,
                    error_code="DUPLICATE_CLIENT_ID",
                    error="submission already exists",
                )
            if payload.is_draft:
                result = await self.save_draft(payload, catalog, volunteer_id=volunteer_id, tenant_id=tenant_id)
            else:
                result = await self.finalize(payload, catalog, volunteer_id=volunteer_id, tenant_id=tenant_id)
        except ValidationFailed as exc:
            return BatchItemResult(
                client_id=client_id,
                success=False,
                error_code=exc.code,
                error=exc.message,
                validation_errors=dict(exc.report.errors),
            )
        except StructuralError as exc:
            return BatchItemResult(
                client_id=client_id,
                success=False,
                error_code=exc.code,
                error=exc.message,
                validation_errors=dict(exc.errors),
            )
        except SubmissionError as exc:
            logger.warning("submission_batch_item_failed client_id=%s code=%s", client_id, exc.code)
            return BatchItemResult(client_id=client_id, success=False, error_code=exc.code, error=exc.message)
        except Exception as exc:
            logger.error("submission_batch_item_error client_id=%s", client_id, exc_info=True)
            return BatchItemResult(client_id=client_id, success=False, error_code="SERVER_ERROR", error=str(exc))
        return BatchItemResult(client_id=client_id, success=True, record_id=result.id, status=result.status)

    async def _find_by_client_id(
        self, payload: SubmissionPayload, volunteer_id: str, tenant_id: Optional[str]
    ) -> Optional[SubmissionRecord]:
        if not payload.client_id:
            return None
        records = await self._call(
            self._store.find_records,
            volunteer_id=volunteer_id,
            questionnaire_id=payload.questionnaire_id,
            status="draft" if payload.is_draft else "completed",
            tenant_id=tenant_id,
        )
        for record in records:
            if record.metadata.get("client_id") == payload.client_id:
                return record
        return None


__all__ = [
    "ANSWER_INSERT_BATCH_SIZE",
    "MAX_BATCH_ITEMS",
    "SubmissionPipeline",
    "to_stored_answers",
]
