"""Transactional facade over the placement components.

Each mutating call holds the (learner, track) lock, runs in one session and
commits before any event is emitted. Events are delivered to listeners off the
request thread. Read-only snapshots skip the lock.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from functools import lru_cache
from typing import Generator, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from . import achievements, assessment_gate, certificates, enrollment as enrollment_manager, review_processor
from .achievements import AchievementView
from .config import get_settings
from .content import content_store
from .db.session import session_scope
from .errors import Conflict, PlacementError
from .ladder import Verdict
from .locking import PairLockRegistry, normalize_learner
from .progress import (
    AnswerResult,
    CertificateEligibility,
    CertificateView,
    EnrollmentResult,
    ProgressSnapshot,
    ReviewResult,
    SubmissionView,
    assessment_view,
    certificate_view,
    enrollment_view,
    ladder_view,
    level_view,
    submission_view,
)
from .questions import Answer
from .repositories.placements import placements
from .review_processor import ReviewRationale, WorkArtifacts
from .telemetry import emit_event

logger = logging.getLogger(__name__)


class PlacementEngine:
    def __init__(self, *, lock_timeout: float = 2.0, review_score_max: float = 10.0) -> None:
        self._locks = PairLockRegistry(timeout=lock_timeout)
        self._review_score_max = review_score_max

    @contextmanager
    def _transaction(self, operation: str, learner: str, track_slug: str) -> Generator[Session, None, None]:
        with self._locks.hold(learner, track_slug):
            try:
                with session_scope() as session:
                    yield session
            except PlacementError as exc:
                logger.info("Rejected %s for learner=%s track=%s: %s", operation, learner, track_slug, exc.message)
                raise
            except (IntegrityError, StaleDataError) as exc:
                logger.warning("Concurrent write during %s for learner=%s track=%s: %s", operation, learner, track_slug, exc)
                raise Conflict(f"A concurrent update for '{learner}' on '{track_slug}' won the race; retry.") from exc

    def _track_scope(self, track_slug: str) -> str:
        with session_scope(commit=False) as session:
            return content_store.require_track(session, track_slug).slug

    def _unit_scope(self, unit_id: str) -> str:
        with session_scope(commit=False) as session:
            unit = content_store.require_unit(session, unit_id)
            return unit.track.slug

    def _submission_scope(self, submission_id: str) -> Tuple[str, str]:
        with session_scope(commit=False) as session:
            submission = placements.require_submission(session, submission_id)
            enrollment = submission.enrollment
            return enrollment.learner, enrollment.track.slug

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def enroll(self, learner: str, track_slug: str) -> EnrollmentResult:
        learner = normalize_learner(learner)
        track_slug = self._track_scope(track_slug)
        with self._transaction("enroll", learner, track_slug) as session:
            track = content_store.require_track(session, track_slug)
            outcome = enrollment_manager.enroll(session, learner, track)
            enrollment = outcome.enrollment
            current = next(
                (
                    record.unit_id
                    for record in placements.progress_by_unit(session, enrollment.id).values()
                    if record.status == "in_progress"
                ),
                None,
            )
            result = EnrollmentResult(
                enrollment=enrollment_view(enrollment),
                ladder=ladder_view(placements.load_ladder(session, enrollment)),
                created=outcome.created,
                current_assessment=current,
            )
        if result.created:
            emit_event(
                "enrollment_created",
                learner=learner,
                track=result.enrollment.track_slug,
                current_tier=result.ladder.current_tier,
                first_assessment=result.current_assessment,
            )
        return result

    def answer(self, learner: str, unit_id: str, response: Answer) -> AnswerResult:
        learner = normalize_learner(learner)
        track_slug = self._unit_scope(unit_id)
        with self._transaction("answer", learner, track_slug) as session:
            unit = content_store.require_unit(session, unit_id)
            enrollment = placements.require_enrollment(session, learner, unit.track_id)
            result = assessment_gate.answer(session, enrollment, unit, response)
            placements.touch(enrollment)
        emit_event(
            "assessment_answered",
            learner=learner,
            track=track_slug,
            unit_id=result.unit_id,
            correct=result.correct,
            attempt=result.attempts_used,
            earned_xp=result.earned_xp,
            status=result.status,
        )
        return result

    def submit_work(self, learner: str, unit_id: str, artifacts: WorkArtifacts) -> SubmissionView:
        learner = normalize_learner(learner)
        track_slug = self._unit_scope(unit_id)
        with self._transaction("submit_work", learner, track_slug) as session:
            unit = content_store.require_unit(session, unit_id)
            enrollment = placements.require_enrollment(session, learner, unit.track_id)
            submission = review_processor.submit_work(session, enrollment, unit, artifacts)
            placements.touch(enrollment)
            view = submission_view(submission)
        emit_event(
            "submission_created",
            learner=learner,
            track=track_slug,
            submission_id=view.submission_id,
            unit_id=view.unit_id,
            tier=view.tier,
        )
        return view

    def record_review(
        self,
        submission_id: str,
        *,
        grader: str,
        score: float,
        verdict: Verdict,
        rationale: Optional[ReviewRationale] = None,
    ) -> ReviewResult:
        learner, track_slug = self._submission_scope(submission_id)
        with self._transaction("record_review", learner, track_slug) as session:
            submission = placements.require_submission(session, submission_id)
            enrollment = submission.enrollment
            outcome = review_processor.record_review(
                session,
                submission,
                grader=grader,
                score=score,
                verdict=verdict,
                rationale=rationale,
                score_max=self._review_score_max,
            )
            placements.touch(enrollment)
            transition = outcome.transition
            result = ReviewResult(
                submission=submission_view(outcome.submission),
                ladder=ladder_view(transition.after),
                awarded_xp=outcome.awarded_xp,
                ladder_changed=transition.changed,
                stale_tier=not transition.applied,
            )
        emit_event(
            "review_recorded",
            learner=learner,
            track=track_slug,
            submission_id=result.submission.submission_id,
            verdict=transition.verdict,
            awarded_xp=result.awarded_xp,
            stale_tier=result.stale_tier,
        )
        if result.ladder_changed:
            emit_event(
                "progress_changed",
                learner=learner,
                track=track_slug,
                previous_tier=transition.before.current_tier,
                current_tier=transition.after.current_tier,
                placement_complete=transition.after.is_terminal,
            )
        return result

    def claim_certificate(self, learner: str, track_slug: str) -> CertificateView:
        learner = normalize_learner(learner)
        track_slug = self._track_scope(track_slug)
        with self._transaction("claim_certificate", learner, track_slug) as session:
            track = content_store.require_track(session, track_slug)
            enrollment = placements.require_enrollment(session, learner, track.id)
            certificate = certificates.claim_certificate(session, enrollment)
            placements.touch(enrollment)
            view = certificate_view(certificate)
        emit_event(
            "certificate_issued",
            learner=learner,
            track=view.track_slug,
            code=view.code,
            level=view.level,
            total_xp=view.total_xp,
        )
        return view

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def certificate_eligibility(self, learner: str, track_slug: str) -> CertificateEligibility:
        with session_scope(commit=False) as session:
            track = content_store.require_track(session, track_slug)
            enrollment = placements.require_enrollment(session, learner, track.id)
            return certificates.evaluate_eligibility(session, enrollment)

    def progress_snapshot(self, learner: str, track_slug: str) -> ProgressSnapshot:
        with session_scope(commit=False) as session:
            track = content_store.require_track(session, track_slug)
            enrollment = placements.require_enrollment(session, learner, track.id)
            progress = placements.progress_by_unit(session, enrollment.id)
            assessments = [
                assessment_view(unit.id, unit.title, unit.position, progress.get(unit.id))
                for unit in content_store.assessment_units(session, track.id)
            ]
            total_xp = placements.xp_total(session, enrollment.learner)
            certificate = certificates.find_certificate(session, enrollment)
            return ProgressSnapshot(
                enrollment=enrollment_view(enrollment),
                ladder=ladder_view(placements.load_ladder(session, enrollment)),
                assessments=assessments,
                submissions=[submission_view(item) for item in placements.list_submissions(session, enrollment.id)],
                total_xp=total_xp,
                level=level_view(total_xp),
                certificate_eligibility=certificates.evaluate_eligibility(session, enrollment),
                certificate=certificate_view(certificate) if certificate is not None else None,
            )

    def pending_submissions(self, track_slug: str) -> List[SubmissionView]:
        with session_scope(commit=False) as session:
            track = content_store.require_track(session, track_slug)
            return [submission_view(item) for item in review_processor.pending_submissions(session, track.id)]

    def list_achievements(self, learner: str) -> List[AchievementView]:
        with session_scope(commit=False) as session:
            return achievements.list_achievements(session, learner)


@lru_cache
def get_placement_engine() -> PlacementEngine:
    settings = get_settings()
    return PlacementEngine(
        lock_timeout=settings.lock_timeout_seconds,
        review_score_max=settings.review_score_max,
    )


__all__ = ["PlacementEngine", "get_placement_engine"]
