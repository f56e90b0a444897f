from __future__ import annotations

import threading

import pytest
from pydantic import ValidationError

from skill_ladder.errors import AlreadyReviewed, NotEligible, NotFound, PlacementError, SubmissionInFlight
from skill_ladder.ladder import SlotStatus, Tier, Verdict
from skill_ladder.progress import SubmissionStatus
from skill_ladder.review_processor import ReviewRationale, WorkArtifacts
from skill_ladder.telemetry import flush_events

from conftest import ARTIFACTS, CORRECT_ANSWERS, TRACK_DEFINITION


def _artifacts() -> WorkArtifacts:
    return WorkArtifacts(**ARTIFACTS)


def _review(engine, submission_id: str, verdict: Verdict, score: float = 8.0):
    return engine.record_review(submission_id, grader="mentor", score=score, verdict=verdict)


def test_submission_requires_completed_assessments(engine, track) -> None:
    engine.enroll("ana", track)
    engine.answer("ana", "pb-check-1", CORRECT_ANSWERS["pb-check-1"])
    with pytest.raises(NotEligible):
        engine.submit_work("ana", "pb-middle", _artifacts())


def test_submission_only_at_current_tier(engine, pass_assessments) -> None:
    pass_assessments("ana")
    with pytest.raises(NotEligible):
        engine.submit_work("ana", "pb-senior", _artifacts())
    with pytest.raises(NotEligible):
        engine.submit_work("ana", "pb-junior", _artifacts())
    submission = engine.submit_work("ana", "pb-middle", _artifacts())
    assert submission.status is SubmissionStatus.PENDING
    assert submission.tier is Tier.MIDDLE
    assert submission.github_url == ARTIFACTS["github_url"]


def test_assessment_unit_does_not_accept_work(engine, pass_assessments) -> None:
    pass_assessments("ana")
    with pytest.raises(NotEligible):
        engine.submit_work("ana", "pb-check-1", _artifacts())


def test_second_open_submission_is_rejected(engine, pass_assessments) -> None:
    pass_assessments("ana")
    engine.submit_work("ana", "pb-middle", _artifacts())
    with pytest.raises(SubmissionInFlight):
        engine.submit_work("ana", "pb-middle", _artifacts())


def test_resubmission_allowed_after_revision(engine, pass_assessments) -> None:
    pass_assessments("ana")
    first = engine.submit_work("ana", "pb-middle", _artifacts())
    result = _review(engine, first.submission_id, Verdict.REVISION)
    assert result.submission.status is SubmissionStatus.REVISION
    assert result.ladder.current_tier is Tier.MIDDLE
    assert result.awarded_xp == 0
    assert not result.ladder_changed
    assert result.ladder.last_verdict is Verdict.REVISION
    second = engine.submit_work("ana", "pb-middle", _artifacts())
    assert second.submission_id != first.submission_id


def test_approval_promotes_and_awards_xp(engine, pass_assessments, events) -> None:
    pass_assessments("ana")
    submission = engine.submit_work("ana", "pb-middle", _artifacts())
    result = engine.record_review(
        submission.submission_id,
        grader="mentor",
        score=9,
        verdict=Verdict.APPROVED,
        rationale=ReviewRationale(strengths="Clean design", improvements="More tests"),
    )
    assert result.awarded_xp == 100
    assert result.submission.status is SubmissionStatus.APPROVED
    assert result.submission.awarded_xp == 100
    assert result.submission.review is not None
    assert result.submission.review.strengths == "Clean design"
    assert result.ladder.current_tier is Tier.SENIOR
    assert result.ladder.slots[Tier.MIDDLE] is SlotStatus.PASSED
    assert result.ladder.slots[Tier.SENIOR] is SlotStatus.PENDING
    assert result.ladder_changed
    flush_events()
    names = [event.name for event in events]
    assert names[-2:] == ["review_recorded", "progress_changed"]
    assert events[-1].payload["current_tier"] == "senior"


def test_second_review_is_rejected_without_side_effects(engine, pass_assessments) -> None:
    pass_assessments("ana")
    submission = engine.submit_work("ana", "pb-middle", _artifacts())
    _review(engine, submission.submission_id, Verdict.APPROVED)
    with pytest.raises(AlreadyReviewed):
        _review(engine, submission.submission_id, Verdict.FAILED)
    snapshot = engine.progress_snapshot("ana", "python-backend")
    assert snapshot.ladder.current_tier is Tier.SENIOR
    assert snapshot.total_xp == 20 + 30 + 100


def test_concurrent_reviews_resolve_exactly_once(engine, pass_assessments) -> None:
    pass_assessments("ana")
    submission = engine.submit_work("ana", "pb-middle", _artifacts())
    barrier = threading.Barrier(2)
    outcomes: list = []

    def worker(verdict: Verdict) -> None:
        barrier.wait()
        try:
            outcomes.append(_review(engine, submission.submission_id, verdict))
        except PlacementError as exc:
            outcomes.append(exc)

    threads = [
        threading.Thread(target=worker, args=(Verdict.APPROVED,)),
        threading.Thread(target=worker, args=(Verdict.FAILED,)),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    errors = [item for item in outcomes if isinstance(item, PlacementError)]
    results = [item for item in outcomes if not isinstance(item, PlacementError)]
    assert len(results) == 1
    assert len(errors) == 1
    assert isinstance(errors[0], AlreadyReviewed)

    snapshot = engine.progress_snapshot("ana", "python-backend")
    assert len(snapshot.submissions) == 1
    if results[0].submission.status is SubmissionStatus.APPROVED:
        assert snapshot.ladder.current_tier is Tier.SENIOR
        assert snapshot.total_xp == 150
    else:
        assert snapshot.ladder.current_tier is Tier.JUNIOR
        assert snapshot.total_xp == 50


def test_concurrent_submissions_open_one(engine, pass_assessments) -> None:
    pass_assessments("ana")
    barrier = threading.Barrier(3)
    outcomes: list = []

    def worker() -> None:
        barrier.wait()
        try:
            outcomes.append(engine.submit_work("ana", "pb-middle", _artifacts()))
        except PlacementError as exc:
            outcomes.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(3)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(1 for item in outcomes if isinstance(item, SubmissionInFlight)) == 2
    assert len(engine.pending_submissions("python-backend")) == 1


def test_practical_xp_is_awarded_once_per_unit(engine, pass_assessments) -> None:
    pass_assessments("ana")
    middle = engine.submit_work("ana", "pb-middle", _artifacts())
    _review(engine, middle.submission_id, Verdict.APPROVED)
    senior = engine.submit_work("ana", "pb-senior", _artifacts())
    _review(engine, senior.submission_id, Verdict.FAILED)
    again = engine.submit_work("ana", "pb-middle", _artifacts())
    result = _review(engine, again.submission_id, Verdict.APPROVED)
    assert result.awarded_xp == 0
    assert result.ladder.current_tier is Tier.SENIOR
    assert engine.progress_snapshot("ana", "python-backend").total_xp == 20 + 30 + 100


def test_review_at_stale_tier_leaves_ladder_alone(engine, pass_assessments, load_track) -> None:
    units = TRACK_DEFINITION["units"] + [
        {"unit_id": "pb-middle-b", "kind": "practical", "title": "Caching layer", "position": 3, "xp_value": 80, "tier": "middle"}
    ]
    load_track({**TRACK_DEFINITION, "units": units})
    pass_assessments("ana")
    first = engine.submit_work("ana", "pb-middle", _artifacts())
    second = engine.submit_work("ana", "pb-middle-b", _artifacts())
    _review(engine, first.submission_id, Verdict.APPROVED)

    stale = _review(engine, second.submission_id, Verdict.FAILED)
    assert stale.stale_tier
    assert not stale.ladder_changed
    assert stale.submission.status is SubmissionStatus.FAILED
    assert stale.ladder.current_tier is Tier.SENIOR


def test_review_validates_score_and_grader(engine, pass_assessments) -> None:
    pass_assessments("ana")
    submission = engine.submit_work("ana", "pb-middle", _artifacts())
    with pytest.raises(NotEligible):
        _review(engine, submission.submission_id, Verdict.APPROVED, score=11)
    with pytest.raises(NotEligible):
        engine.record_review(submission.submission_id, grader="  ", score=5, verdict=Verdict.APPROVED)
    pending = engine.pending_submissions("python-backend")
    assert [item.submission_id for item in pending] == [submission.submission_id]


def test_review_unknown_submission(engine, track) -> None:
    with pytest.raises(NotFound):
        _review(engine, "00000000-0000-0000-0000-000000000000", Verdict.APPROVED)


def test_pending_queue_is_oldest_first(engine, pass_assessments) -> None:
    pass_assessments("ana")
    pass_assessments("ben")
    first = engine.submit_work("ana", "pb-middle", _artifacts())
    second = engine.submit_work("ben", "pb-middle", _artifacts())
    pending = engine.pending_submissions("python-backend")
    assert [item.submission_id for item in pending] == [first.submission_id, second.submission_id]
    assert [item.learner for item in pending] == ["ana", "ben"]
    _review(engine, first.submission_id, Verdict.REVISION)
    assert [item.submission_id for item in engine.pending_submissions("python-backend")] == [second.submission_id]


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"github_url": "https://gitlab.com/learner/project"},
        {"deploy_url": "http://example.com"},
        {"file_url": "ftp://files.example.com/report.pdf"},
        {"github_url": "https://github.com/learner/project", "comment": "x" * 2001},
    ],
)
def test_artifact_validation(payload: dict) -> None:
    with pytest.raises(ValidationError):
        WorkArtifacts(**payload)


def test_artifacts_accept_any_single_link() -> None:
    artifacts = WorkArtifacts(deploy_url=" https://demo.example.com ", github_url="")
    assert artifacts.deploy_url == "https://demo.example.com"
    assert artifacts.github_url is None
