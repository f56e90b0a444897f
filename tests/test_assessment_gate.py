from __future__ import annotations

import itertools
import threading

import pytest

from skill_ladder.content import content_store
from skill_ladder.db.session import session_scope
from skill_ladder.errors import AlreadyResolved, NotEligible, NotFound, PlacementError
from skill_ladder.progress import AssessmentStatus
from skill_ladder.questions import MatchingAnswer, SingleChoiceAnswer
from skill_ladder.repositories.placements import placements

from conftest import CORRECT_ANSWERS, TRACK_DEFINITION, WRONG_ANSWERS


def _statuses(engine, learner: str, track: str) -> dict:
    snapshot = engine.progress_snapshot(learner, track)
    return {item.unit_id: item.status for item in snapshot.assessments}


def test_enrollment_opens_only_the_first_assessment(engine, track) -> None:
    result = engine.enroll("ana", track)
    assert result.current_assessment == "pb-check-1"
    assert _statuses(engine, "ana", track) == {
        "pb-check-1": AssessmentStatus.IN_PROGRESS,
        "pb-check-2": AssessmentStatus.NOT_STARTED,
    }


def test_later_assessment_is_locked_until_predecessor_completes(engine, track) -> None:
    engine.enroll("ana", track)
    with pytest.raises(NotEligible):
        engine.answer("ana", "pb-check-2", CORRECT_ANSWERS["pb-check-2"])


def test_first_attempt_success_awards_full_xp_and_opens_next(engine, track) -> None:
    engine.enroll("ana", track)
    result = engine.answer("ana", "pb-check-1", CORRECT_ANSWERS["pb-check-1"])
    assert result.correct
    assert result.earned_xp == 20
    assert result.status is AssessmentStatus.COMPLETED
    assert result.next_unit_id == "pb-check-2"
    assert not result.all_assessments_completed


def test_third_attempt_success_awards_decayed_xp(engine, track) -> None:
    engine.enroll("ana", track)
    engine.answer("ana", "pb-check-1", CORRECT_ANSWERS["pb-check-1"])
    first = engine.answer("ana", "pb-check-2", WRONG_ANSWERS["pb-check-2"])
    assert first.attempts_remaining == 2
    assert first.status is AssessmentStatus.IN_PROGRESS
    engine.answer("ana", "pb-check-2", WRONG_ANSWERS["pb-check-2"])
    third = engine.answer("ana", "pb-check-2", CORRECT_ANSWERS["pb-check-2"])
    assert third.correct
    assert third.earned_xp == 11
    assert third.all_assessments_completed


def test_exhausted_attempts_complete_with_zero_xp(engine, track) -> None:
    engine.enroll("ana", track)
    for _ in range(3):
        result = engine.answer("ana", "pb-check-1", WRONG_ANSWERS["pb-check-1"])
    assert result.status is AssessmentStatus.COMPLETED
    assert result.earned_xp == 0
    assert result.attempts_remaining == 0
    assert result.next_unit_id == "pb-check-2"
    assert engine.progress_snapshot("ana", track).total_xp == 0


def test_answering_completed_unit_is_rejected_without_changes(engine, track) -> None:
    engine.enroll("ana", track)
    engine.answer("ana", "pb-check-1", CORRECT_ANSWERS["pb-check-1"])
    with pytest.raises(AlreadyResolved):
        engine.answer("ana", "pb-check-1", CORRECT_ANSWERS["pb-check-1"])
    snapshot = engine.progress_snapshot("ana", track)
    first = snapshot.assessments[0]
    assert first.attempts_used == 1
    assert snapshot.total_xp == 20


def test_answer_kind_mismatch_is_not_eligible(engine, track) -> None:
    engine.enroll("ana", track)
    with pytest.raises(NotEligible):
        engine.answer("ana", "pb-check-1", MatchingAnswer(pairs={"a": "b"}))
    assert engine.progress_snapshot("ana", track).assessments[0].attempts_used == 0


def test_answer_requires_enrollment_and_known_unit(engine, track) -> None:
    with pytest.raises(NotFound):
        engine.answer("ghost", "pb-check-1", CORRECT_ANSWERS["pb-check-1"])
    engine.enroll("ana", track)
    with pytest.raises(NotFound):
        engine.answer("ana", "missing-unit", SingleChoiceAnswer(selected_option=0))


def test_practical_unit_cannot_be_answered(engine, track) -> None:
    engine.enroll("ana", track)
    with pytest.raises(NotEligible):
        engine.answer("ana", "pb-middle", SingleChoiceAnswer(selected_option=0))


def test_answers_are_audited(engine, track) -> None:
    engine.enroll("ana", track)
    engine.answer("ana", "pb-check-1", WRONG_ANSWERS["pb-check-1"])
    with session_scope(commit=False) as session:
        enrollment = placements.find_enrollment(session, "ana", _track_id(session, track))
        kinds = [event.event_type for event in placements.audit_trail(session, enrollment.id)]
    assert {"enrollment_created", "assessment_started", "assessment_answered"} <= set(kinds)
    assert kinds.count("assessment_answered") == 1


def _track_id(session, slug: str) -> str:
    return content_store.require_track(session, slug).id


def test_concurrent_answers_never_exceed_attempt_limit(engine, track) -> None:
    engine.enroll("ana", track)
    barrier = threading.Barrier(4)
    outcomes: list = []

    def worker() -> None:
        barrier.wait()
        try:
            outcomes.append(engine.answer("ana", "pb-check-1", WRONG_ANSWERS["pb-check-1"]))
        except PlacementError as exc:
            outcomes.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    attempts = sorted(item.attempts_used for item in outcomes if not isinstance(item, PlacementError))
    errors = [item for item in outcomes if isinstance(item, PlacementError)]
    assert attempts == [1, 2, 3]
    assert len(errors) == 1
    assert isinstance(errors[0], AlreadyResolved)

    first = engine.progress_snapshot("ana", track).assessments[0]
    assert first.attempts_used == 3
    assert first.status is AssessmentStatus.COMPLETED
    assert first.earned_xp == 0


THREE_CHECKS = {
    "pb-check-1": SingleChoiceAnswer(selected_option=1),
    "pb-check-2": CORRECT_ANSWERS["pb-check-2"],
    "pb-check-3": SingleChoiceAnswer(selected_option=0),
}


@pytest.mark.parametrize("order", list(itertools.permutations(THREE_CHECKS)))
def test_assessments_unlock_strictly_in_sequence(engine, load_track, order) -> None:
    third = {
        "unit_id": "pb-check-3",
        "kind": "assessment",
        "title": "Status codes",
        "position": 2,
        "xp_value": 10,
        "question": {
            "kind": "single_choice",
            "prompt": "Which status means created?",
            "options": ["201", "204"],
            "correct_option": 0,
        },
    }
    slug = load_track({**TRACK_DEFINITION, "units": TRACK_DEFINITION["units"] + [third]})
    engine.enroll("ana", slug)

    completed: list[str] = []
    pending = list(order)
    while pending:
        for unit_id in list(pending):
            expected_next = ["pb-check-1", "pb-check-2", "pb-check-3"][len(completed)]
            if unit_id != expected_next:
                with pytest.raises(NotEligible):
                    engine.answer("ana", unit_id, THREE_CHECKS[unit_id])
                continue
            result = engine.answer("ana", unit_id, THREE_CHECKS[unit_id])
            assert result.status is AssessmentStatus.COMPLETED
            completed.append(unit_id)
            pending.remove(unit_id)

    assert completed == ["pb-check-1", "pb-check-2", "pb-check-3"]
    statuses = _statuses(engine, "ana", slug)
    assert set(statuses.values()) == {AssessmentStatus.COMPLETED}
