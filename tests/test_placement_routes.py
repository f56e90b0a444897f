"""HTTP-level tests for the placement router, including the full placement walk."""

from __future__ import annotations

from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import update

from skill_ladder.db.models import UnitModel
from skill_ladder.db.session import session_scope
from skill_ladder.engine import get_placement_engine
from skill_ladder.errors import Conflict
from skill_ladder.main import app

LEARNER = "dana"
TRACK = "python-backend"


@pytest.fixture
def client(track: str) -> TestClient:
    return TestClient(app)


def _enroll(client: TestClient) -> Dict[str, Any]:
    response = client.post(f"/api/tracks/{TRACK}/enroll", json={"learner": LEARNER})
    assert response.status_code == 200
    return response.json()


def _pass_assessments(client: TestClient) -> None:
    answers = {
        "pb-check-1": {"kind": "single_choice", "selected_option": 1},
        "pb-check-2": {"kind": "ordering", "order": ["route", "validate", "respond"]},
    }
    for unit_id, answer in answers.items():
        response = client.post(f"/api/assessments/{unit_id}/answer", json={"learner": LEARNER, "answer": answer})
        assert response.status_code == 200
        body = response.json()
        assert body["correct"] is True
        assert body["attempts_used"] == 1


def _submit(client: TestClient, unit_id: str) -> str:
    response = client.post(
        f"/api/practicals/{unit_id}/submissions",
        json={"learner": LEARNER, "artifacts": {"github_url": "https://github.com/dana/project"}},
    )
    assert response.status_code == 201, response.text
    return response.json()["submission_id"]


def _review(client: TestClient, submission_id: str, verdict: str, score: float = 7) -> Dict[str, Any]:
    response = client.post(
        f"/api/submissions/{submission_id}/review",
        json={"grader": "mentor", "score": score, "verdict": verdict, "comment": "Reviewed"},
    )
    assert response.status_code == 200, response.text
    return response.json()


def _progress(client: TestClient) -> Dict[str, Any]:
    response = client.get(f"/api/tracks/{TRACK}/learners/{LEARNER}/progress")
    assert response.status_code == 200
    return response.json()


def test_full_placement_walk(client: TestClient) -> None:
    enrolled = _enroll(client)
    assert enrolled["created"] is True
    assert enrolled["ladder"]["current_tier"] == "middle"

    _pass_assessments(client)
    progress = _progress(client)
    assert progress["total_xp"] == 50
    assert [item["status"] for item in progress["assessments"]] == ["completed", "completed"]

    first = _submit(client, "pb-middle")
    revised = _review(client, first, "revision")
    assert revised["ladder"]["current_tier"] == "middle"
    assert revised["ladder"]["slots"]["middle"] == "pending"
    assert revised["awarded_xp"] == 0

    second = _submit(client, "pb-middle")
    approved = _review(client, second, "approved", score=9)
    assert approved["ladder"]["current_tier"] == "senior"
    assert approved["ladder"]["slots"] == {"junior": "locked", "middle": "passed", "senior": "pending"}
    assert approved["awarded_xp"] == 100

    senior = _submit(client, "pb-senior")
    failed = _review(client, senior, "failed", score=3)
    assert failed["ladder"]["current_tier"] == "middle"
    assert failed["ladder"]["slots"] == {"junior": "locked", "middle": "pending", "senior": "locked"}
    assert failed["ladder"]["passed_tiers"] == ["middle"]
    assert failed["awarded_xp"] == 0

    progress = _progress(client)
    assert progress["total_xp"] == 150
    assert progress["level"]["name"] == "Apprentice"
    assert len(progress["submissions"]) == 3
    assert progress["certificate_eligibility"]["eligible"] is True

    claimed = client.post(f"/api/tracks/{TRACK}/learners/{LEARNER}/certificate")
    assert claimed.status_code == 201
    assert claimed.json()["level"] == "middle"
    again = client.post(f"/api/tracks/{TRACK}/learners/{LEARNER}/certificate")
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "already_resolved"


def test_enroll_twice_returns_existing(client: TestClient) -> None:
    first = _enroll(client)
    second = _enroll(client)
    assert second["created"] is False
    assert second["enrollment"]["enrollment_id"] == first["enrollment"]["enrollment_id"]


def test_error_mapping(client: TestClient) -> None:
    missing = client.post("/api/tracks/unknown/enroll", json={"learner": LEARNER})
    assert missing.status_code == 404
    assert missing.json()["detail"] == {
        "code": "not_found",
        "message": "Track 'unknown' was not found.",
        "retryable": False,
    }

    _enroll(client)
    locked = client.post(
        "/api/practicals/pb-middle/submissions",
        json={"learner": LEARNER, "artifacts": {"deploy_url": "https://dana.example.com"}},
    )
    assert locked.status_code == 403
    assert locked.json()["detail"]["code"] == "not_eligible"

    _pass_assessments(client)
    submission_id = _submit(client, "pb-middle")
    duplicate = client.post(
        "/api/practicals/pb-middle/submissions",
        json={"learner": LEARNER, "artifacts": {"github_url": "https://github.com/dana/project"}},
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"]["code"] == "submission_in_flight"

    _review(client, submission_id, "approved")
    twice = client.post(
        f"/api/submissions/{submission_id}/review",
        json={"grader": "mentor", "score": 5, "verdict": "failed"},
    )
    assert twice.status_code == 409
    assert twice.json()["detail"]["code"] == "already_reviewed"


def test_conflict_carries_retry_after(client: TestClient) -> None:
    class BusyEngine:
        def enroll(self, learner: str, track_slug: str):
            raise Conflict("busy")

    app.dependency_overrides[get_placement_engine] = lambda: BusyEngine()
    try:
        response = client.post(f"/api/tracks/{TRACK}/enroll", json={"learner": LEARNER})
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == 409
    assert response.headers["Retry-After"] == "1"
    assert response.json()["detail"]["retryable"] is True


def test_request_validation(client: TestClient) -> None:
    _enroll(client)
    bad_artifacts = client.post(
        "/api/practicals/pb-middle/submissions",
        json={"learner": LEARNER, "artifacts": {"github_url": "http://github.com/dana/project"}},
    )
    assert bad_artifacts.status_code == 422

    bad_answer = client.post(
        "/api/assessments/pb-check-1/answer",
        json={"learner": LEARNER, "answer": {"kind": "essay", "text": "..."}},
    )
    assert bad_answer.status_code == 422

    blank = client.post(f"/api/tracks/{TRACK}/enroll", json={"learner": "   "})
    assert blank.status_code == 422


def test_pending_queue_and_eligibility_endpoints(client: TestClient) -> None:
    _enroll(client)
    _pass_assessments(client)
    submission_id = _submit(client, "pb-middle")

    pending = client.get(f"/api/tracks/{TRACK}/submissions/pending")
    assert pending.status_code == 200
    assert [item["submission_id"] for item in pending.json()] == [submission_id]

    eligibility = client.get(f"/api/tracks/{TRACK}/learners/{LEARNER}/certificate-eligibility")
    assert eligibility.status_code == 200
    assert eligibility.json()["eligible"] is False

    unknown = client.get(f"/api/tracks/{TRACK}/learners/nobody/progress")
    assert unknown.status_code == 404


def test_review_score_above_scale_is_rejected(client: TestClient) -> None:
    _enroll(client)
    _pass_assessments(client)
    submission_id = _submit(client, "pb-middle")
    response = client.post(
        f"/api/submissions/{submission_id}/review",
        json={"grader": "mentor", "score": 42, "verdict": "approved"},
    )
    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "not_eligible"


def test_corrupt_stored_question_is_a_server_error(client: TestClient) -> None:
    _enroll(client)
    with session_scope() as session:
        session.execute(
            update(UnitModel).where(UnitModel.id == "pb-check-1").values(question={"kind": "single_choice"})
        )
    response = client.post(
        "/api/assessments/pb-check-1/answer",
        json={"learner": LEARNER, "answer": {"kind": "single_choice", "selected_option": 1}},
    )
    assert response.status_code == 500
    assert response.json()["detail"]["code"] == "placement_invariant_violation"
    assert _progress(client)["assessments"][0]["attempts_used"] == 0
