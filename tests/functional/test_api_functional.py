"""Functional tests for the HTTP adapter.

The app is built around an injected in-memory pipeline so each test starts
from an empty store; responses are asserted on status, problem+json shape and
headers.
"""

from __future__ import annotations

from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient

from survey_intake.main import create_app


HEADERS = {"X-Volunteer-Id": "vol-1", "X-Tenant-Id": "tenant-pr"}


@pytest.fixture
def client(pipeline, catalog) -> TestClient:
    return TestClient(create_app(pipeline=pipeline, catalogs=[catalog]))


def _problem(resp) -> Dict[str, Any]:
    assert resp.headers["content-type"].startswith("application/problem+json")
    return resp.json()


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "catalogs": 1}


def test_validate_endpoint_reports_errors_and_summary(client, make_payload):
    resp = client.post(
        "/api/v1/submissions/validate",
        json=make_payload({"birth_date": "2010-01-01", "age_range": "18-25"}),
        headers=HEADERS,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["is_valid"] is False
    assert "business_rules.age_consistency" in body["errors"]
    assert body["summary"]["conditional_questions"] == ["which_party"]


def test_request_id_is_echoed_or_generated(client):
    echoed = client.get("/health", headers={"X-Request-Id": "req-123"})
    assert echoed.headers["X-Request-Id"] == "req-123"
    generated = client.get("/health")
    assert generated.headers["X-Request-Id"]


def test_draft_then_final_flow(client, make_payload):
    draft = client.post("/api/v1/drafts", json=make_payload({"name": None}, is_draft=True), headers=HEADERS)
    assert draft.status_code == 200
    assert draft.json()["warnings"]["answers.name"] == ["this question is required"]

    final = client.post("/api/v1/submissions", json=make_payload(), headers=HEADERS)
    assert final.status_code == 201
    record_id = final.json()["id"]
    assert record_id == draft.json()["id"]

    fetched = client.get(f"/api/v1/submissions/{record_id}", headers=HEADERS)
    assert fetched.status_code == 200
    assert fetched.json()["record"]["status"] == "completed"

    deleted = client.delete(f"/api/v1/drafts/{record_id}", headers=HEADERS)
    assert deleted.status_code == 409
    assert _problem(deleted)["code"] == "RECORD_IMMUTABLE"


def test_put_replaces_draft_and_rejects_completed_record(client, make_payload):
    draft = client.post("/api/v1/drafts", json=make_payload({"gender": None}, is_draft=True), headers=HEADERS)
    record_id = draft.json()["id"]

    updated = client.put(f"/api/v1/drafts/{record_id}", json=make_payload(is_draft=True), headers=HEADERS)
    assert updated.status_code == 200
    assert updated.json()["id"] == record_id
    assert updated.json()["status"] == "draft"

    assert client.post("/api/v1/submissions", json=make_payload(), headers=HEADERS).status_code == 201
    rejected = client.put(
        f"/api/v1/drafts/{record_id}", json=make_payload({"gender": "M"}, is_draft=True), headers=HEADERS
    )
    assert rejected.status_code == 409
    assert _problem(rejected)["code"] == "RECORD_IMMUTABLE"
    fetched = client.get(f"/api/v1/submissions/{record_id}", headers=HEADERS).json()
    gender = next(a for a in fetched["answers"] if a["question_id"] == "gender")
    assert gender["answer_value"] == "F"


def test_final_validation_failure_is_problem_json(client, make_payload):
    resp = client.post("/api/v1/submissions", json=make_payload({"gender": None}), headers=HEADERS)
    assert resp.status_code == 400
    body = _problem(resp)
    assert body["code"] == "VALIDATION_FAILED"
    assert body["errors"]["answers.gender"] == ["this question is required"]
    assert body["request_id"]


def test_duplicate_final_is_conflict(client, make_payload):
    assert client.post("/api/v1/submissions", json=make_payload(), headers=HEADERS).status_code == 201
    resp = client.post("/api/v1/submissions", json=make_payload(), headers=HEADERS)
    assert resp.status_code == 409
    assert _problem(resp)["context"]["existing_record_id"]


def test_idempotency_key_header_replays(client, make_payload):
    headers = dict(HEADERS, **{"Idempotency-Key": "submit-42"})
    first = client.post("/api/v1/submissions", json=make_payload(), headers=headers)
    second = client.post("/api/v1/submissions", json=make_payload(), headers=headers)
    assert second.status_code == 201
    assert second.json()["id"] == first.json()["id"]
    assert second.json()["replayed"] is True


def test_structural_payload_error(client):
    resp = client.post("/api/v1/drafts", json={"answers": "nope"}, headers=HEADERS)
    assert resp.status_code == 400
    body = _problem(resp)
    assert body["code"] == "INVALID_REQUEST_FORMAT"
    assert "questionnaire_id" in body["errors"]


def test_unknown_or_foreign_questionnaire(client, make_payload):
    unknown = client.post("/api/v1/submissions", json=make_payload(questionnaire_id="nope"), headers=HEADERS)
    assert _problem(unknown)["code"] == "INVALID_QUESTIONNAIRE"
    foreign = client.post(
        "/api/v1/submissions",
        json=make_payload(),
        headers={"X-Volunteer-Id": "vol-1", "X-Tenant-Id": "tenant-other"},
    )
    assert foreign.status_code == 400
    assert _problem(foreign)["code"] == "INVALID_QUESTIONNAIRE"


def test_missing_volunteer_header_is_rejected(client, make_payload):
    resp = client.post("/api/v1/submissions", json=make_payload())
    assert resp.status_code == 422
    assert _problem(resp)["code"] == "INVALID_REQUEST_FORMAT"


def test_other_volunteers_record_is_not_found(client, make_payload):
    record_id = client.post("/api/v1/submissions", json=make_payload(), headers=HEADERS).json()["id"]
    resp = client.get(f"/api/v1/submissions/{record_id}", headers={"X-Volunteer-Id": "vol-2"})
    assert resp.status_code == 404
    assert _problem(resp)["code"] == "RECORD_NOT_FOUND"


def test_batch_endpoint(client, make_payload):
    body = {"submissions": [make_payload(client_id="c1"), {"client_id": "c2", "answers": "bad"}]}
    resp = client.post("/api/v1/submissions/batch", json=body, headers=HEADERS)
    assert resp.status_code == 200
    out = resp.json()
    assert (out["total"], out["successful"], out["failed"]) == (2, 1, 1)
    assert out["results"][1]["error_code"] == "INVALID_REQUEST_FORMAT"

    empty = client.post("/api/v1/submissions/batch", json={"submissions": []}, headers=HEADERS)
    assert empty.status_code == 400


def test_cleanup_endpoint_dry_run(client, make_payload):
    client.post("/api/v1/drafts", json=make_payload(is_draft=True), headers=HEADERS)
    resp = client.post(
        "/api/v1/drafts/cleanup", json={"older_than_days": 0, "keep_recent": 0, "dry_run": True}, headers=HEADERS
    )
    assert resp.status_code == 200
    assert resp.json()["dry_run"] is True
