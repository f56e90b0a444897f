"""Sequential unlocking and attempt-limited scoring of assessment units."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from .content import content_store
from .db.models import AssessmentProgressModel, EnrollmentModel, UnitModel
from .errors import AlreadyResolved, NotEligible, NotFound
from .progress import AnswerResult, AssessmentStatus
from .questions import Answer, AnswerKindMismatch, grade
from .repositories.placements import placements
from .xp import MAX_ATTEMPTS, decayed_xp

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def start_next_if_eligible(session: Session, enrollment: EnrollmentModel) -> Optional[AssessmentProgressModel]:
    """Open the first assessment unit whose predecessors are all completed.

    Returns the progress row moved to in-progress, or ``None`` when every unit
    is completed or one is already in progress.
    """
    units = content_store.assessment_units(session, enrollment.track_id)
    progress = placements.progress_by_unit(session, enrollment.id)
    for unit in units:
        record = progress.get(unit.id)
        if record is not None and record.status == AssessmentStatus.COMPLETED.value:
            continue
        if record is not None and record.status == AssessmentStatus.IN_PROGRESS.value:
            return None
        if record is None:
            record = AssessmentProgressModel(
                enrollment_id=enrollment.id,
                unit_id=unit.id,
                attempts_used=0,
                earned_xp=0,
            )
            session.add(record)
        record.status = AssessmentStatus.IN_PROGRESS.value
        record.started_at = _now()
        session.flush()
        placements.record_audit(session, enrollment.id, "assessment_started", {"unit_id": unit.id})
        logger.debug("Opened assessment unit %s for learner=%s", unit.id, enrollment.learner)
        return record
    return None


def all_assessments_completed(session: Session, enrollment: EnrollmentModel) -> bool:
    total = len(content_store.assessment_units(session, enrollment.track_id))
    return placements.completed_assessment_count(session, enrollment.id) == total


def answer(session: Session, enrollment: EnrollmentModel, unit: UnitModel, response: Answer) -> AnswerResult:
    """Score one attempt at an assessment unit.

    A correct attempt completes the unit with decayed XP; the third wrong
    attempt completes it with zero XP. Either way the next unit is opened.
    """
    if unit.track_id != enrollment.track_id:
        raise NotFound(f"Unit '{unit.id}' does not belong to this track.")
    if unit.kind != "assessment":
        raise NotEligible(f"Unit '{unit.id}' is not an assessment unit.")

    record = placements.progress_by_unit(session, enrollment.id).get(unit.id)
    if record is not None and record.status == AssessmentStatus.COMPLETED.value:
        raise AlreadyResolved(f"Assessment '{unit.id}' is already completed.")
    if record is None or record.status != AssessmentStatus.IN_PROGRESS.value:
        raise NotEligible(f"Assessment '{unit.id}' is locked until earlier assessments are completed.")

    question = content_store.question_for(unit)
    try:
        correct = grade(question, response)
    except AnswerKindMismatch as exc:
        raise NotEligible(str(exc)) from exc

    record.attempts_used += 1
    attempt = record.attempts_used
    earned = 0
    if correct:
        earned = decayed_xp(unit.xp_value, attempt)
        record.earned_xp = earned
        record.status = AssessmentStatus.COMPLETED.value
        record.completed_at = _now()
    elif attempt >= MAX_ATTEMPTS:
        record.earned_xp = 0
        record.status = AssessmentStatus.COMPLETED.value
        record.completed_at = _now()
    session.flush()

    placements.record_audit(
        session,
        enrollment.id,
        "assessment_answered",
        {"unit_id": unit.id, "attempt": attempt, "correct": correct, "earned_xp": earned, "status": record.status},
        actor=enrollment.learner,
    )

    next_unit_id: Optional[str] = None
    completed = record.status == AssessmentStatus.COMPLETED.value
    if completed:
        opened = start_next_if_eligible(session, enrollment)
        next_unit_id = opened.unit_id if opened is not None else None

    return AnswerResult(
        unit_id=unit.id,
        correct=correct,
        status=AssessmentStatus(record.status),
        attempts_used=attempt,
        attempts_remaining=max(MAX_ATTEMPTS - attempt, 0) if not completed else 0,
        earned_xp=earned,
        next_unit_id=next_unit_id,
        all_assessments_completed=completed and all_assessments_completed(session, enrollment),
    )


__all__ = ["all_assessments_completed", "answer", "start_next_if_eligible"]
