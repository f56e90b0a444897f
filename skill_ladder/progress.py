"""Read models returned by placement operations and snapshot queries."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .db.models import AssessmentProgressModel, CertificateModel, EnrollmentModel, ReviewModel, SubmissionModel
from .ladder import LadderState, SlotStatus, TIER_ORDER, Tier, Verdict
from .xp import MAX_ATTEMPTS, level_for_xp, xp_to_next_level


class AssessmentStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REVISION = "revision"
    FAILED = "failed"

    @classmethod
    def from_verdict(cls, verdict: Verdict) -> "SubmissionStatus":
        return cls(Verdict(verdict).value)


class EnrollmentView(BaseModel):
    enrollment_id: str
    learner: str
    track_slug: str
    enrolled_at: datetime


class LadderView(BaseModel):
    current_tier: Tier
    slots: Dict[Tier, SlotStatus]
    passed_tiers: List[Tier] = Field(default_factory=list)
    placement_complete: bool = False
    last_verdict: Optional[Verdict] = None
    last_verdict_tier: Optional[Tier] = None


class AssessmentProgressView(BaseModel):
    unit_id: str
    title: str
    position: int
    status: AssessmentStatus
    attempts_used: int = 0
    attempts_remaining: int = MAX_ATTEMPTS
    earned_xp: int = 0


class ReviewView(BaseModel):
    review_id: str
    grader: str
    score: float
    verdict: Verdict
    strengths: Optional[str] = None
    improvements: Optional[str] = None
    comment: Optional[str] = None
    created_at: datetime


class SubmissionView(BaseModel):
    submission_id: str
    learner: str
    track_slug: str
    unit_id: str
    tier: Tier
    status: SubmissionStatus
    github_url: Optional[str] = None
    deploy_url: Optional[str] = None
    file_url: Optional[str] = None
    comment: Optional[str] = None
    awarded_xp: int = 0
    submitted_at: datetime
    reviewed_at: Optional[datetime] = None
    review: Optional[ReviewView] = None


class LevelView(BaseModel):
    level: int
    name: str
    xp_to_next_level: Optional[int] = None


class CertificateEligibility(BaseModel):
    eligible: bool
    assessments_completed: int
    assessments_total: int
    approved_units: List[str] = Field(default_factory=list)
    reasons: List[str] = Field(default_factory=list)


class CertificateView(BaseModel):
    code: str
    learner: str
    track_slug: str
    level: Tier
    total_xp: int
    issued_at: datetime


class ProgressSnapshot(BaseModel):
    enrollment: EnrollmentView
    ladder: LadderView
    assessments: List[AssessmentProgressView] = Field(default_factory=list)
    submissions: List[SubmissionView] = Field(default_factory=list)
    total_xp: int = 0
    level: LevelView
    certificate_eligibility: CertificateEligibility
    certificate: Optional[CertificateView] = None


class AnswerResult(BaseModel):
    unit_id: str
    correct: bool
    status: AssessmentStatus
    attempts_used: int
    attempts_remaining: int
    earned_xp: int = 0
    next_unit_id: Optional[str] = None
    all_assessments_completed: bool = False


class EnrollmentResult(BaseModel):
    enrollment: EnrollmentView
    ladder: LadderView
    created: bool = False
    current_assessment: Optional[str] = None


class ReviewResult(BaseModel):
    submission: SubmissionView
    ladder: LadderView
    awarded_xp: int = 0
    ladder_changed: bool = False
    stale_tier: bool = False


def enrollment_view(enrollment: EnrollmentModel) -> EnrollmentView:
    return EnrollmentView(
        enrollment_id=enrollment.id,
        learner=enrollment.learner,
        track_slug=enrollment.track.slug,
        enrolled_at=enrollment.created_at,
    )


def ladder_view(state: LadderState) -> LadderView:
    return LadderView(
        current_tier=state.current_tier,
        slots=state.slots,
        passed_tiers=[tier for tier in TIER_ORDER if tier in state.passed],
        placement_complete=state.is_terminal,
        last_verdict=state.last_verdict,
        last_verdict_tier=state.last_verdict_tier,
    )


def level_view(total_xp: int) -> LevelView:
    level = level_for_xp(total_xp)
    return LevelView(level=level.level, name=level.name, xp_to_next_level=xp_to_next_level(total_xp))


def assessment_view(unit_id: str, title: str, position: int, record: Optional[AssessmentProgressModel]) -> AssessmentProgressView:
    if record is None:
        return AssessmentProgressView(
            unit_id=unit_id, title=title, position=position, status=AssessmentStatus.NOT_STARTED
        )
    return AssessmentProgressView(
        unit_id=unit_id,
        title=title,
        position=position,
        status=AssessmentStatus(record.status),
        attempts_used=record.attempts_used,
        attempts_remaining=max(MAX_ATTEMPTS - record.attempts_used, 0),
        earned_xp=record.earned_xp,
    )


def review_view(review: ReviewModel) -> ReviewView:
    return ReviewView(
        review_id=review.id,
        grader=review.grader,
        score=review.score,
        verdict=Verdict(review.verdict),
        strengths=review.strengths,
        improvements=review.improvements,
        comment=review.comment,
        created_at=review.created_at,
    )


def submission_view(submission: SubmissionModel) -> SubmissionView:
    enrollment = submission.enrollment
    return SubmissionView(
        submission_id=submission.id,
        learner=enrollment.learner,
        track_slug=enrollment.track.slug,
        unit_id=submission.unit_id,
        tier=Tier(submission.tier),
        status=SubmissionStatus(submission.status),
        github_url=submission.github_url,
        deploy_url=submission.deploy_url,
        file_url=submission.file_url,
        comment=submission.comment,
        awarded_xp=submission.awarded_xp,
        submitted_at=submission.submitted_at,
        reviewed_at=submission.reviewed_at,
        review=review_view(submission.review) if submission.review else None,
    )


def certificate_view(certificate: CertificateModel) -> CertificateView:
    enrollment = certificate.enrollment
    return CertificateView(
        code=certificate.code,
        learner=enrollment.learner,
        track_slug=enrollment.track.slug,
        level=Tier(certificate.level),
        total_xp=certificate.total_xp,
        issued_at=certificate.issued_at,
    )


__all__ = [
    "AnswerResult",
    "AssessmentProgressView",
    "AssessmentStatus",
    "CertificateEligibility",
    "CertificateView",
    "EnrollmentResult",
    "EnrollmentView",
    "LadderView",
    "LevelView",
    "ProgressSnapshot",
    "ReviewResult",
    "ReviewView",
    "SubmissionStatus",
    "SubmissionView",
    "assessment_view",
    "certificate_view",
    "enrollment_view",
    "ladder_view",
    "level_view",
    "review_view",
    "submission_view",
]
