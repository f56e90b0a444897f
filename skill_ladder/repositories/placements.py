"""Database-backed placement repository."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from ..db.models import (
    AssessmentProgressModel,
    EnrollmentModel,
    LadderStateModel,
    PlacementAuditEventModel,
    SubmissionModel,
)
from ..errors import InvariantViolation, NotFound
from ..ladder import TIER_ORDER, LadderState, ladder_from_record
from ..locking import normalize_learner
from ..progress import AssessmentStatus, SubmissionStatus

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PlacementRepository:
    """Persistence helpers shared by the placement components."""

    def find_enrollment(self, session: Session, learner: str, track_id: str) -> Optional[EnrollmentModel]:
        stmt = select(EnrollmentModel).where(
            EnrollmentModel.learner == normalize_learner(learner),
            EnrollmentModel.track_id == track_id,
        )
        return session.execute(stmt).scalar_one_or_none()

    def require_enrollment(self, session: Session, learner: str, track_id: str) -> EnrollmentModel:
        enrollment = self.find_enrollment(session, learner, track_id)
        if enrollment is None:
            raise NotFound(f"Learner '{learner}' is not enrolled in this track.")
        return enrollment

    def touch(self, enrollment: EnrollmentModel) -> None:
        """Mark the enrollment row dirty so its version column is checked and bumped."""
        enrollment.last_activity_at = _now()

    # ------------------------------------------------------------------
    # Ladder
    # ------------------------------------------------------------------

    def load_ladder(self, session: Session, enrollment: EnrollmentModel) -> LadderState:
        record = self._ladder_record(session, enrollment)
        return ladder_from_record(
            record.current_tier,
            record.passed_tiers or [],
            record.last_verdict,
            record.last_verdict_tier,
        )

    def save_ladder(self, session: Session, enrollment: EnrollmentModel, state: LadderState) -> None:
        record = self._ladder_record(session, enrollment)
        record.current_tier = state.current_tier.value
        record.passed_tiers = [tier.value for tier in TIER_ORDER if tier in state.passed]
        record.last_verdict = state.last_verdict.value if state.last_verdict else None
        record.last_verdict_tier = state.last_verdict_tier.value if state.last_verdict_tier else None
        session.flush()

    def create_ladder(self, session: Session, enrollment: EnrollmentModel, state: LadderState) -> LadderStateModel:
        record = LadderStateModel(
            enrollment_id=enrollment.id,
            current_tier=state.current_tier.value,
            passed_tiers=[tier.value for tier in TIER_ORDER if tier in state.passed],
        )
        session.add(record)
        session.flush()
        return record

    def _ladder_record(self, session: Session, enrollment: EnrollmentModel) -> LadderStateModel:
        stmt = select(LadderStateModel).where(LadderStateModel.enrollment_id == enrollment.id)
        record = session.execute(stmt).scalar_one_or_none()
        if record is None:
            logger.error(
                "Ladder state missing for enrollment=%s learner=%s; refusing operation",
                enrollment.id,
                enrollment.learner,
            )
            raise InvariantViolation(f"Enrollment '{enrollment.id}' has no ladder state.")
        return record

    # ------------------------------------------------------------------
    # Assessment progress
    # ------------------------------------------------------------------

    def progress_by_unit(self, session: Session, enrollment_id: str) -> Dict[str, AssessmentProgressModel]:
        stmt = select(AssessmentProgressModel).where(AssessmentProgressModel.enrollment_id == enrollment_id)
        return {record.unit_id: record for record in session.execute(stmt).scalars().all()}

    def completed_assessment_count(self, session: Session, enrollment_id: str) -> int:
        stmt = select(func.count(AssessmentProgressModel.id)).where(
            AssessmentProgressModel.enrollment_id == enrollment_id,
            AssessmentProgressModel.status == AssessmentStatus.COMPLETED.value,
        )
        return int(session.execute(stmt).scalar_one())

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------

    def require_submission(self, session: Session, submission_id: str) -> SubmissionModel:
        stmt = (
            select(SubmissionModel)
            .where(SubmissionModel.id == submission_id.strip())
            .options(selectinload(SubmissionModel.review), selectinload(SubmissionModel.enrollment))
        )
        submission = session.execute(stmt).scalar_one_or_none()
        if submission is None:
            raise NotFound(f"Submission '{submission_id}' was not found.")
        return submission

    def open_submission(self, session: Session, enrollment_id: str, unit_id: str) -> Optional[SubmissionModel]:
        stmt = select(SubmissionModel).where(
            SubmissionModel.enrollment_id == enrollment_id,
            SubmissionModel.unit_id == unit_id,
            SubmissionModel.status == SubmissionStatus.PENDING.value,
        )
        return session.execute(stmt).scalars().first()

    def list_submissions(self, session: Session, enrollment_id: str) -> Sequence[SubmissionModel]:
        stmt = (
            select(SubmissionModel)
            .where(SubmissionModel.enrollment_id == enrollment_id)
            .options(selectinload(SubmissionModel.review))
            .order_by(SubmissionModel.submitted_at.asc(), SubmissionModel.id.asc())
        )
        return session.execute(stmt).scalars().all()

    def pending_for_track(self, session: Session, track_id: str) -> Sequence[SubmissionModel]:
        stmt = (
            select(SubmissionModel)
            .join(EnrollmentModel, SubmissionModel.enrollment_id == EnrollmentModel.id)
            .where(
                EnrollmentModel.track_id == track_id,
                SubmissionModel.status == SubmissionStatus.PENDING.value,
            )
            .options(selectinload(SubmissionModel.enrollment))
            .order_by(SubmissionModel.submitted_at.asc(), SubmissionModel.id.asc())
        )
        return session.execute(stmt).scalars().all()

    def approved_unit_ids(self, session: Session, enrollment_id: str) -> List[str]:
        stmt = (
            select(SubmissionModel.unit_id)
            .where(
                SubmissionModel.enrollment_id == enrollment_id,
                SubmissionModel.status == SubmissionStatus.APPROVED.value,
            )
            .distinct()
        )
        return sorted(session.execute(stmt).scalars().all())

    def xp_already_awarded(self, session: Session, enrollment_id: str, unit_id: str) -> bool:
        stmt = select(func.count(SubmissionModel.id)).where(
            SubmissionModel.enrollment_id == enrollment_id,
            SubmissionModel.unit_id == unit_id,
            SubmissionModel.awarded_xp > 0,
        )
        return int(session.execute(stmt).scalar_one()) > 0

    # ------------------------------------------------------------------
    # XP
    # ------------------------------------------------------------------

    def xp_total(self, session: Session, learner: str) -> int:
        """Sum of assessment and practical XP across every track the learner is in."""
        normalized = normalize_learner(learner)
        assessment_stmt = (
            select(func.coalesce(func.sum(AssessmentProgressModel.earned_xp), 0))
            .join(EnrollmentModel, AssessmentProgressModel.enrollment_id == EnrollmentModel.id)
            .where(EnrollmentModel.learner == normalized)
        )
        practical_stmt = (
            select(func.coalesce(func.sum(SubmissionModel.awarded_xp), 0))
            .join(EnrollmentModel, SubmissionModel.enrollment_id == EnrollmentModel.id)
            .where(EnrollmentModel.learner == normalized)
        )
        return int(session.execute(assessment_stmt).scalar_one()) + int(session.execute(practical_stmt).scalar_one())

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def record_audit(
        self,
        session: Session,
        enrollment_id: Optional[str],
        event_type: str,
        payload: Dict[str, Any],
        *,
        actor: str = "system",
    ) -> None:
        session.add(
            PlacementAuditEventModel(
                enrollment_id=enrollment_id,
                event_type=event_type,
                payload=payload,
                actor=actor,
            )
        )

    def audit_trail(self, session: Session, enrollment_id: str) -> Sequence[PlacementAuditEventModel]:
        stmt = (
            select(PlacementAuditEventModel)
            .where(PlacementAuditEventModel.enrollment_id == enrollment_id)
            .order_by(PlacementAuditEventModel.created_at.asc(), PlacementAuditEventModel.id.asc())
        )
        return session.execute(stmt).scalars().all()


placements = PlacementRepository()

__all__ = ["PlacementRepository", "placements"]
