"""Certificate eligibility, derived fresh from placement records on every call."""

from __future__ import annotations

import logging
import secrets

from sqlalchemy import select
from sqlalchemy.orm import Session

from .content import content_store
from .db.models import CertificateModel, EnrollmentModel
from .errors import AlreadyResolved, NotEligible
from .ladder import Tier
from .progress import CertificateEligibility
from .repositories.placements import placements

logger = logging.getLogger(__name__)

CODE_PREFIX = "PROM-"


def evaluate_eligibility(session: Session, enrollment: EnrollmentModel) -> CertificateEligibility:
    total = len(content_store.assessment_units(session, enrollment.track_id))
    completed = placements.completed_assessment_count(session, enrollment.id)
    approved = placements.approved_unit_ids(session, enrollment.id)

    reasons = []
    if completed < total:
        reasons.append(f"{total - completed} of {total} assessments are not completed.")
    if not approved:
        reasons.append("No practical work has been approved yet.")
    return CertificateEligibility(
        eligible=not reasons,
        assessments_completed=completed,
        assessments_total=total,
        approved_units=approved,
        reasons=reasons,
    )


def find_certificate(session: Session, enrollment: EnrollmentModel):
    stmt = select(CertificateModel).where(CertificateModel.enrollment_id == enrollment.id)
    return session.execute(stmt).scalar_one_or_none()


def _certificate_code() -> str:
    return CODE_PREFIX + secrets.token_hex(4).upper()


def claim_certificate(session: Session, enrollment: EnrollmentModel) -> CertificateModel:
    """Issue the learner's certificate for this track, at most once."""
    if find_certificate(session, enrollment) is not None:
        raise AlreadyResolved("A certificate was already issued for this track.")
    eligibility = evaluate_eligibility(session, enrollment)
    if not eligibility.eligible:
        raise NotEligible(" ".join(eligibility.reasons))

    state = placements.load_ladder(session, enrollment)
    level = state.highest_passed() or Tier.MIDDLE
    certificate = CertificateModel(
        enrollment_id=enrollment.id,
        code=_certificate_code(),
        level=level.value,
        total_xp=placements.xp_total(session, enrollment.learner),
    )
    session.add(certificate)
    session.flush()
    placements.record_audit(
        session,
        enrollment.id,
        "certificate_issued",
        {"code": certificate.code, "level": certificate.level, "total_xp": certificate.total_xp},
        actor=enrollment.learner,
    )
    logger.info("Issued certificate %s to learner=%s", certificate.code, enrollment.learner)
    return certificate


__all__ = ["claim_certificate", "evaluate_eligibility", "find_certificate"]
