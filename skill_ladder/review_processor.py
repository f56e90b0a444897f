"""Practical submissions and grader reviews: the only writer of ladder moves and practical XP."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy import update
from sqlalchemy.orm import Session

from .assessment_gate import all_assessments_completed
from .db.models import EnrollmentModel, ReviewModel, SubmissionModel, UnitModel
from .errors import AlreadyReviewed, NotEligible, NotFound, SubmissionInFlight
from .ladder import LadderTransition, Tier, Verdict, apply_verdict
from .progress import SubmissionStatus
from .repositories.placements import placements

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 2000


def _now() -> datetime:
    return datetime.now(timezone.utc)


class WorkArtifacts(BaseModel):
    """Learner-supplied references to the practical deliverable."""

    github_url: Optional[str] = None
    deploy_url: Optional[str] = None
    file_url: Optional[str] = None
    comment: Optional[str] = Field(default=None, max_length=MAX_COMMENT_LENGTH)

    @field_validator("github_url", "deploy_url", "file_url", "comment", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value

    @field_validator("github_url")
    @classmethod
    def _check_github(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.startswith("https://github.com/"):
            raise ValueError("GitHub URL must start with https://github.com/")
        return value

    @field_validator("deploy_url", "file_url")
    @classmethod
    def _check_https(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.startswith("https://"):
            raise ValueError("Links must use HTTPS.")
        return value

    @model_validator(mode="after")
    def _require_link(self) -> "WorkArtifacts":
        if not (self.github_url or self.deploy_url or self.file_url):
            raise ValueError("Provide at least one link (GitHub, deployment or file).")
        return self


class ReviewRationale(BaseModel):
    strengths: Optional[str] = None
    improvements: Optional[str] = None
    comment: Optional[str] = None


@dataclass(frozen=True)
class ReviewOutcome:
    submission: SubmissionModel
    review: ReviewModel
    transition: LadderTransition
    awarded_xp: int


def submit_work(
    session: Session,
    enrollment: EnrollmentModel,
    unit: UnitModel,
    artifacts: WorkArtifacts,
) -> SubmissionModel:
    if unit.track_id != enrollment.track_id:
        raise NotFound(f"Unit '{unit.id}' does not belong to this track.")
    if unit.kind != "practical" or unit.tier is None:
        raise NotEligible(f"Unit '{unit.id}' does not accept work submissions.")
    if not all_assessments_completed(session, enrollment):
        raise NotEligible("Complete every assessment in the track before submitting practical work.")

    state = placements.load_ladder(session, enrollment)
    tier = Tier(unit.tier)
    if not state.accepts_work_at(tier):
        raise NotEligible(
            f"Practical work at tier '{tier.value}' is not open; current tier is '{state.current_tier.value}'."
        )
    if placements.open_submission(session, enrollment.id, unit.id) is not None:
        raise SubmissionInFlight(f"A submission for '{unit.id}' is already awaiting review.")

    submission = SubmissionModel(
        enrollment_id=enrollment.id,
        unit_id=unit.id,
        tier=tier.value,
        status=SubmissionStatus.PENDING.value,
        github_url=artifacts.github_url,
        deploy_url=artifacts.deploy_url,
        file_url=artifacts.file_url,
        comment=artifacts.comment,
    )
    session.add(submission)
    session.flush()
    placements.record_audit(
        session,
        enrollment.id,
        "submission_created",
        {"submission_id": submission.id, "unit_id": unit.id, "tier": tier.value},
        actor=enrollment.learner,
    )
    logger.info("Submission %s created for learner=%s unit=%s", submission.id, enrollment.learner, unit.id)
    return submission


def record_review(
    session: Session,
    submission: SubmissionModel,
    *,
    grader: str,
    score: float,
    verdict: Verdict,
    rationale: Optional[ReviewRationale] = None,
    score_max: float = 10.0,
) -> ReviewOutcome:
    """Resolve a pending submission exactly once and move the ladder.

    The status change out of pending is a conditional UPDATE; XP is written by
    that same statement, so a lost race can never award twice.
    """
    verdict = Verdict(verdict)
    if submission.status != SubmissionStatus.PENDING.value:
        raise AlreadyReviewed(f"Submission '{submission.id}' was already reviewed.")
    if not 0 <= score <= score_max:
        raise NotEligible(f"Score must be between 0 and {score_max:g}.")
    grader_id = grader.strip()
    if not grader_id:
        raise NotEligible("A grader identity is required to record a review.")

    enrollment = submission.enrollment
    unit = submission.unit
    awarded = 0
    if verdict is Verdict.APPROVED and not placements.xp_already_awarded(session, enrollment.id, unit.id):
        awarded = unit.xp_value

    reviewed_at = _now()
    result = session.execute(
        update(SubmissionModel)
        .where(
            SubmissionModel.id == submission.id,
            SubmissionModel.status == SubmissionStatus.PENDING.value,
        )
        .values(
            status=SubmissionStatus.from_verdict(verdict).value,
            reviewed_at=reviewed_at,
            awarded_xp=awarded,
        )
    )
    if result.rowcount != 1:
        raise AlreadyReviewed(f"Submission '{submission.id}' was already reviewed.")
    session.refresh(submission)

    rationale = rationale or ReviewRationale()
    review = ReviewModel(
        submission=submission,
        grader=grader_id,
        score=float(score),
        verdict=verdict.value,
        strengths=rationale.strengths,
        improvements=rationale.improvements,
        comment=rationale.comment,
    )
    session.add(review)

    before = placements.load_ladder(session, enrollment)
    tier = Tier(submission.tier)
    if tier is before.current_tier:
        after = apply_verdict(before, tier, verdict)
        placements.save_ladder(session, enrollment, after)
        transition = LadderTransition(before=before, after=after, tier=tier, verdict=verdict)
    else:
        logger.warning(
            "Review for submission %s at tier %s ignored by ladder (current tier %s)",
            submission.id,
            tier.value,
            before.current_tier.value,
        )
        transition = LadderTransition(before=before, after=before, tier=tier, verdict=verdict, applied=False)

    session.flush()
    placements.record_audit(
        session,
        enrollment.id,
        "review_recorded",
        {
            "submission_id": submission.id,
            "unit_id": unit.id,
            "tier": tier.value,
            "verdict": verdict.value,
            "score": float(score),
            "awarded_xp": awarded,
            "ladder_applied": transition.applied,
            "current_tier_before": before.current_tier.value,
            "current_tier_after": transition.after.current_tier.value,
        },
        actor=grader_id,
    )
    logger.info(
        "Review recorded submission=%s verdict=%s tier %s -> %s",
        submission.id,
        verdict.value,
        before.current_tier.value,
        transition.after.current_tier.value,
    )
    return ReviewOutcome(submission=submission, review=review, transition=transition, awarded_xp=awarded)


def pending_submissions(session: Session, track_id: str) -> Sequence[SubmissionModel]:
    return placements.pending_for_track(session, track_id)


__all__ = [
    "ReviewOutcome",
    "ReviewRationale",
    "WorkArtifacts",
    "pending_submissions",
    "record_review",
    "submit_work",
]
