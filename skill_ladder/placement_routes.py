"""REST endpoints for enrollment, assessments, practical work and certificates."""

from __future__ import annotations

import logging
from typing import Dict, List, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from .achievements import AchievementView
from .engine import PlacementEngine, get_placement_engine
from .errors import (
    AlreadyResolved,
    AlreadyReviewed,
    Conflict,
    NotEligible,
    NotFound,
    PlacementError,
    SubmissionInFlight,
)
from .ladder import Verdict
from .progress import (
    AnswerResult,
    CertificateEligibility,
    CertificateView,
    EnrollmentResult,
    ProgressSnapshot,
    ReviewResult,
    SubmissionView,
)
from .questions import Answer
from .review_processor import MAX_COMMENT_LENGTH, ReviewRationale, WorkArtifacts

router = APIRouter(prefix="/api", tags=["placement"])
logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = {
    NotFound: status.HTTP_404_NOT_FOUND,
    NotEligible: status.HTTP_403_FORBIDDEN,
    AlreadyResolved: status.HTTP_409_CONFLICT,
    AlreadyReviewed: status.HTTP_409_CONFLICT,
    SubmissionInFlight: status.HTTP_409_CONFLICT,
    Conflict: status.HTTP_409_CONFLICT,
}


class EnrollRequest(BaseModel):
    learner: str = Field(..., min_length=1, max_length=128)


class AnswerRequest(BaseModel):
    learner: str = Field(..., min_length=1, max_length=128)
    answer: Answer


class SubmitWorkRequest(BaseModel):
    learner: str = Field(..., min_length=1, max_length=128)
    artifacts: WorkArtifacts


class ReviewRequest(BaseModel):
    grader: str = Field(..., min_length=1, max_length=128)
    score: float = Field(..., ge=0)
    verdict: Verdict
    strengths: Optional[str] = Field(default=None, max_length=MAX_COMMENT_LENGTH)
    improvements: Optional[str] = Field(default=None, max_length=MAX_COMMENT_LENGTH)
    comment: Optional[str] = Field(default=None, max_length=MAX_COMMENT_LENGTH)


def _raise_http(exc: Exception) -> NoReturn:
    if isinstance(exc, PlacementError):
        status_code = _STATUS_BY_ERROR.get(type(exc), status.HTTP_400_BAD_REQUEST)
        headers: Optional[Dict[str, str]] = {"Retry-After": "1"} if exc.retryable else None
        raise HTTPException(status_code=status_code, detail=exc.as_detail(), headers=headers) from exc
    raise HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={"code": "invalid_request", "message": str(exc), "retryable": False},
    ) from exc


@router.post(
    "/tracks/{track_slug}/enroll",
    response_model=EnrollmentResult,
    status_code=status.HTTP_200_OK,
)
def enroll(
    track_slug: str,
    request: EnrollRequest,
    engine: PlacementEngine = Depends(get_placement_engine),
) -> EnrollmentResult:
    try:
        return engine.enroll(request.learner, track_slug)
    except (PlacementError, ValueError) as exc:
        _raise_http(exc)


@router.post(
    "/assessments/{unit_id}/answer",
    response_model=AnswerResult,
    status_code=status.HTTP_200_OK,
)
def answer_assessment(
    unit_id: str,
    request: AnswerRequest,
    engine: PlacementEngine = Depends(get_placement_engine),
) -> AnswerResult:
    try:
        return engine.answer(request.learner, unit_id, request.answer)
    except (PlacementError, ValueError) as exc:
        _raise_http(exc)


@router.post(
    "/practicals/{unit_id}/submissions",
    response_model=SubmissionView,
    status_code=status.HTTP_201_CREATED,
)
def submit_work(
    unit_id: str,
    request: SubmitWorkRequest,
    engine: PlacementEngine = Depends(get_placement_engine),
) -> SubmissionView:
    try:
        return engine.submit_work(request.learner, unit_id, request.artifacts)
    except (PlacementError, ValueError) as exc:
        _raise_http(exc)


@router.post(
    "/submissions/{submission_id}/review",
    response_model=ReviewResult,
    status_code=status.HTTP_200_OK,
)
def review_submission(
    submission_id: str,
    request: ReviewRequest,
    engine: PlacementEngine = Depends(get_placement_engine),
) -> ReviewResult:
    rationale = ReviewRationale(
        strengths=request.strengths,
        improvements=request.improvements,
        comment=request.comment,
    )
    try:
        return engine.record_review(
            submission_id,
            grader=request.grader,
            score=request.score,
            verdict=request.verdict,
            rationale=rationale,
        )
    except (PlacementError, ValueError) as exc:
        _raise_http(exc)


@router.get(
    "/tracks/{track_slug}/learners/{learner}/progress",
    response_model=ProgressSnapshot,
    status_code=status.HTTP_200_OK,
)
def get_progress(
    track_slug: str,
    learner: str,
    engine: PlacementEngine = Depends(get_placement_engine),
) -> ProgressSnapshot:
    try:
        return engine.progress_snapshot(learner, track_slug)
    except (PlacementError, ValueError) as exc:
        _raise_http(exc)


@router.get(
    "/tracks/{track_slug}/learners/{learner}/certificate-eligibility",
    response_model=CertificateEligibility,
    status_code=status.HTTP_200_OK,
)
def get_certificate_eligibility(
    track_slug: str,
    learner: str,
    engine: PlacementEngine = Depends(get_placement_engine),
) -> CertificateEligibility:
    try:
        return engine.certificate_eligibility(learner, track_slug)
    except (PlacementError, ValueError) as exc:
        _raise_http(exc)


@router.post(
    "/tracks/{track_slug}/learners/{learner}/certificate",
    response_model=CertificateView,
    status_code=status.HTTP_201_CREATED,
)
def claim_certificate(
    track_slug: str,
    learner: str,
    engine: PlacementEngine = Depends(get_placement_engine),
) -> CertificateView:
    try:
        return engine.claim_certificate(learner, track_slug)
    except (PlacementError, ValueError) as exc:
        _raise_http(exc)


@router.get(
    "/tracks/{track_slug}/submissions/pending",
    response_model=List[SubmissionView],
    status_code=status.HTTP_200_OK,
)
def list_pending_submissions(
    track_slug: str,
    engine: PlacementEngine = Depends(get_placement_engine),
) -> List[SubmissionView]:
    try:
        return engine.pending_submissions(track_slug)
    except (PlacementError, ValueError) as exc:
        _raise_http(exc)


@router.get(
    "/learners/{learner}/achievements",
    response_model=List[AchievementView],
    status_code=status.HTTP_200_OK,
)
def list_achievements(
    learner: str,
    engine: PlacementEngine = Depends(get_placement_engine),
) -> List[AchievementView]:
    try:
        return engine.list_achievements(learner)
    except (PlacementError, ValueError) as exc:
        _raise_http(exc)


__all__ = ["router"]
