"""Idempotent track enrollment and ladder seeding."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from .assessment_gate import start_next_if_eligible
from .db.models import EnrollmentModel, TrackModel
from .errors import NotEligible
from .ladder import initial_ladder
from .locking import normalize_learner
from .repositories.placements import placements

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnrollmentOutcome:
    enrollment: EnrollmentModel
    created: bool


def enroll(session: Session, learner: str, track: TrackModel) -> EnrollmentOutcome:
    """Return the learner's enrollment, creating it with a seeded ladder if absent.

    Creation, ladder seeding and opening the first assessment happen in the
    caller's transaction, so they commit or roll back together.
    """
    normalized = normalize_learner(learner)
    existing = placements.find_enrollment(session, normalized, track.id)
    if existing is not None:
        # Surfaces a missing ladder as an invariant violation instead of repairing it.
        placements.load_ladder(session, existing)
        return EnrollmentOutcome(enrollment=existing, created=False)

    if not track.is_published:
        raise NotEligible(f"Track '{track.slug}' is not open for enrollment.")

    enrollment = EnrollmentModel(learner=normalized, track_id=track.id)
    session.add(enrollment)
    session.flush()
    state = initial_ladder()
    placements.create_ladder(session, enrollment, state)
    opened = start_next_if_eligible(session, enrollment)
    placements.record_audit(
        session,
        enrollment.id,
        "enrollment_created",
        {
            "track": track.slug,
            "current_tier": state.current_tier.value,
            "first_assessment": opened.unit_id if opened is not None else None,
        },
        actor=normalized,
    )
    logger.info("Enrolled learner=%s in track=%s", normalized, track.slug)
    return EnrollmentOutcome(enrollment=enrollment, created=True)


__all__ = ["EnrollmentOutcome", "enroll"]
