from __future__ import annotations

import re

import pytest
from sqlalchemy import update

from skill_ladder.db.models import SubmissionModel
from skill_ladder.db.session import session_scope
from skill_ladder.errors import AlreadyResolved, NotEligible, NotFound
from skill_ladder.ladder import Tier, Verdict
from skill_ladder.review_processor import WorkArtifacts
from skill_ladder.telemetry import flush_events

from conftest import ARTIFACTS, CORRECT_ANSWERS


def _approve(engine, learner: str, unit_id: str) -> str:
    submission = engine.submit_work(learner, unit_id, WorkArtifacts(**ARTIFACTS))
    engine.record_review(submission.submission_id, grader="mentor", score=9, verdict=Verdict.APPROVED)
    return submission.submission_id


def test_not_eligible_until_assessments_and_approval(engine, track) -> None:
    engine.enroll("ana", track)
    eligibility = engine.certificate_eligibility("ana", track)
    assert not eligibility.eligible
    assert eligibility.assessments_total == 2
    assert eligibility.assessments_completed == 0
    assert len(eligibility.reasons) == 2

    for unit_id, response in CORRECT_ANSWERS.items():
        engine.answer("ana", unit_id, response)
    eligibility = engine.certificate_eligibility("ana", track)
    assert not eligibility.eligible
    assert eligibility.reasons == ["No practical work has been approved yet."]

    _approve(engine, "ana", "pb-middle")
    eligibility = engine.certificate_eligibility("ana", track)
    assert eligibility.eligible
    assert eligibility.approved_units == ["pb-middle"]
    assert eligibility.reasons == []


def test_eligibility_is_recomputed_from_submissions(engine, pass_assessments) -> None:
    pass_assessments("ana")
    submission_id = _approve(engine, "ana", "pb-middle")
    assert engine.certificate_eligibility("ana", "python-backend").eligible

    with session_scope() as session:
        session.execute(
            update(SubmissionModel).where(SubmissionModel.id == submission_id).values(status="revision")
        )
    assert not engine.certificate_eligibility("ana", "python-backend").eligible


def test_claim_certificate_once(engine, pass_assessments, events) -> None:
    pass_assessments("ana")
    _approve(engine, "ana", "pb-middle")

    certificate = engine.claim_certificate("ana", "python-backend")
    assert re.fullmatch(r"PROM-[0-9A-F]{8}", certificate.code)
    assert certificate.level is Tier.MIDDLE
    assert certificate.total_xp == 20 + 30 + 100
    flush_events()
    assert events[-1].name == "certificate_issued"

    with pytest.raises(AlreadyResolved):
        engine.claim_certificate("ana", "python-backend")
    snapshot = engine.progress_snapshot("ana", "python-backend")
    assert snapshot.certificate is not None
    assert snapshot.certificate.code == certificate.code


def test_certificate_level_is_highest_passed_tier(engine, pass_assessments) -> None:
    pass_assessments("ana")
    _approve(engine, "ana", "pb-middle")
    _approve(engine, "ana", "pb-senior")
    assert engine.claim_certificate("ana", "python-backend").level is Tier.SENIOR


def test_certificate_level_after_demotion(engine, pass_assessments) -> None:
    pass_assessments("ana")
    failed = engine.submit_work("ana", "pb-middle", WorkArtifacts(**ARTIFACTS))
    engine.record_review(failed.submission_id, grader="mentor", score=2, verdict=Verdict.FAILED)
    junior = engine.submit_work("ana", "pb-junior", WorkArtifacts(**ARTIFACTS))
    engine.record_review(junior.submission_id, grader="mentor", score=7, verdict=Verdict.APPROVED)
    assert engine.claim_certificate("ana", "python-backend").level is Tier.JUNIOR


def test_claim_requires_eligibility(engine, pass_assessments) -> None:
    pass_assessments("ana")
    with pytest.raises(NotEligible):
        engine.claim_certificate("ana", "python-backend")


def test_eligibility_requires_enrollment(engine, track) -> None:
    with pytest.raises(NotFound):
        engine.certificate_eligibility("ghost", track)
