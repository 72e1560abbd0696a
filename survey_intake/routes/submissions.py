"""Submission, draft and validation routes.

Thin adapter over SubmissionPipeline. Caller identity arrives in the
X-Volunteer-Id / X-Tenant-Id headers set by the embedding gateway; request
bodies are taken as plain objects so structural problems are reported by the
core parser in the same problem+json shape as every other failure.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Header, Request, Response

from survey_intake.logic.errors import SubmissionError
from survey_intake.logic.payload_shape import parse_payload
from survey_intake.logic.submission_pipeline import SubmissionPipeline
from survey_intake.models.questionnaire import QuestionCatalog

router = APIRouter()
logger = logging.getLogger(__name__)


def _pipeline(request: Request) -> SubmissionPipeline:
    return request.app.state.pipeline


def _catalogs(request: Request) -> Dict[str, QuestionCatalog]:
    return request.app.state.catalogs


def _catalog_for(request: Request, questionnaire_id: str, tenant_id: Optional[str]) -> QuestionCatalog:
    catalog = _catalogs(request).get(questionnaire_id)
    other_tenant = catalog is not None and bool(tenant_id and catalog.tenant_id and catalog.tenant_id != tenant_id)
    if catalog is None or not catalog.questionnaire.is_active or other_tenant:
        raise SubmissionError(
            f"questionnaire {questionnaire_id} not found or inactive",
            code="INVALID_QUESTIONNAIRE",
            details={"questionnaire_id": questionnaire_id},
        )
    return catalog


@router.post("/submissions/validate", summary="Validate a submission without persisting it")
async def validate_submission(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    x_tenant_id: Optional[str] = Header(default=None, alias="X-Tenant-Id"),
):
    parsed = parse_payload(payload)
    catalog = _catalog_for(request, parsed.questionnaire_id, x_tenant_id)
    validator = _pipeline(request).validator
    report = validator.validate(parsed, catalog)
    summary = validator.validation_summary(parsed.answers, catalog)
    return {
        "is_valid": report.is_valid,
        "errors": report.errors,
        "warnings": report.warnings,
        "summary": summary.model_dump(),
    }


@router.post("/drafts", summary="Create or update the caller's draft")
async def save_draft(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    x_volunteer_id: str = Header(..., alias="X-Volunteer-Id"),
    x_tenant_id: Optional[str] = Header(default=None, alias="X-Tenant-Id"),
):
    parsed = parse_payload(payload)
    catalog = _catalog_for(request, parsed.questionnaire_id, x_tenant_id)
    result = await _pipeline(request).save_draft(
        parsed, catalog, volunteer_id=x_volunteer_id, tenant_id=x_tenant_id
    )
    return result.model_dump()


@router.put("/drafts/{record_id}", summary="Replace the content of a draft")
async def update_draft(
    request: Request,
    record_id: str,
    payload: Dict[str, Any] = Body(...),
    x_volunteer_id: str = Header(..., alias="X-Volunteer-Id"),
    x_tenant_id: Optional[str] = Header(default=None, alias="X-Tenant-Id"),
):
    parsed = parse_payload(payload)
    catalog = _catalog_for(request, parsed.questionnaire_id, x_tenant_id)
    result = await _pipeline(request).update_draft(
        record_id, parsed, catalog, volunteer_id=x_volunteer_id, tenant_id=x_tenant_id
    )
    return result.model_dump()


@router.delete("/drafts/{record_id}", summary="Delete a draft")
async def delete_draft(
    request: Request,
    record_id: str,
    x_volunteer_id: str = Header(..., alias="X-Volunteer-Id"),
):
    await _pipeline(request).delete_draft(record_id, volunteer_id=x_volunteer_id)
    return Response(status_code=204)


@router.post("/drafts/cleanup", summary="Remove stale drafts")
async def cleanup_drafts(
    request: Request,
    criteria: Optional[Dict[str, Any]] = Body(default=None),
    x_volunteer_id: str = Header(..., alias="X-Volunteer-Id"),
    x_tenant_id: Optional[str] = Header(default=None, alias="X-Tenant-Id"),
):
    criteria = criteria or {}
    result = await _pipeline(request).cleanup_drafts(
        volunteer_id=x_volunteer_id,
        older_than_days=criteria.get("older_than_days"),
        keep_recent=criteria.get("keep_recent"),
        questionnaire_id=criteria.get("questionnaire_id"),
        dry_run=bool(criteria.get("dry_run", False)),
        tenant_id=x_tenant_id,
    )
    return result.model_dump()


@router.post("/submissions", status_code=201, summary="Finalize a submission")
async def finalize_submission(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    x_volunteer_id: str = Header(..., alias="X-Volunteer-Id"),
    x_tenant_id: Optional[str] = Header(default=None, alias="X-Tenant-Id"),
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
):
    parsed = parse_payload(payload)
    catalog = _catalog_for(request, parsed.questionnaire_id, x_tenant_id)
    result = await _pipeline(request).finalize(
        parsed,
        catalog,
        volunteer_id=x_volunteer_id,
        tenant_id=x_tenant_id,
        idempotency_key=(idempotency_key or "").strip() or None,
    )
    return result.model_dump()


@router.post("/submissions/batch", summary="Process an offline-sync batch")
async def submit_batch(
    request: Request,
    body: Dict[str, Any] = Body(...),
    x_volunteer_id: str = Header(..., alias="X-Volunteer-Id"),
    x_tenant_id: Optional[str] = Header(default=None, alias="X-Tenant-Id"),
):
    items = body.get("submissions")
    if not isinstance(items, list) or not items:
        raise SubmissionError(
            "submissions must be a non-empty list",
            code="INVALID_REQUEST_FORMAT",
            details={"errors": {"submissions": ["expected a non-empty list"]}},
        )
    results = await _pipeline(request).submit_batch(
        items, _catalogs(request), volunteer_id=x_volunteer_id, tenant_id=x_tenant_id
    )
    out: List[Dict[str, Any]] = [r.model_dump(exclude_none=True) for r in results]
    return {
        "total": len(out),
        "successful": sum(1 for r in results if r.success),
        "failed": sum(1 for r in results if not r.success),
        "results": out,
    }


@router.get("/submissions/{record_id}", summary="Fetch a record with its answers")
async def get_submission(
    request: Request,
    record_id: str,
    x_volunteer_id: str = Header(..., alias="X-Volunteer-Id"),
):
    found = await _pipeline(request).get_record(record_id, volunteer_id=x_volunteer_id)
    return found.model_dump(mode="json")


__all__ = ["router"]
