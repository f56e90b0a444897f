"""Achievement awarding driven by placement events.

The listener recomputes a learner's counters after each relevant event and
stores any achievement whose threshold is newly met. It runs on the event
dispatcher thread in its own session, so a failure here never touches the
placement transition that produced the event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, FrozenSet, List, Sequence, Set

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .config import get_settings
from .db.models import (
    CertificateModel,
    EnrollmentModel,
    LadderStateModel,
    LearnerAchievementModel,
    ReviewModel,
    SubmissionModel,
)
from .db.session import session_scope
from .ladder import Tier
from .locking import normalize_learner
from .progress import SubmissionStatus
from .repositories.placements import placements
from .telemetry import TelemetryEvent, emit_event, register_listener

logger = logging.getLogger(__name__)

_TRIGGER_EVENTS: FrozenSet[str] = frozenset(
    {
        "enrollment_created",
        "assessment_answered",
        "submission_created",
        "review_recorded",
        "certificate_issued",
    }
)


@dataclass(frozen=True)
class LearnerStats:
    enrollments: int = 0
    submissions: int = 0
    approved: int = 0
    perfect_reviews: int = 0
    certificates: int = 0
    total_xp: int = 0
    passed_tiers: FrozenSet[Tier] = frozenset()


@dataclass(frozen=True)
class AchievementDef:
    code: str
    name: str
    description: str
    earned: Callable[[LearnerStats], bool]


def _tier(tier: Tier) -> Callable[[LearnerStats], bool]:
    return lambda stats: tier in stats.passed_tiers


CATALOGUE: Sequence[AchievementDef] = (
    AchievementDef("FIRST_TRAIL", "First track", "Enroll in a first track.", lambda s: s.enrollments >= 1),
    AchievementDef("TRAILS_3", "Explorer", "Enroll in three tracks.", lambda s: s.enrollments >= 3),
    AchievementDef("FIRST_SUBMISSION", "First work", "Submit practical work for review.", lambda s: s.submissions >= 1),
    AchievementDef("SUBMISSIONS_5", "Steady builder", "Submit practical work five times.", lambda s: s.submissions >= 5),
    AchievementDef("FIRST_APPROVED", "First success", "Get practical work approved.", lambda s: s.approved >= 1),
    AchievementDef("APPROVED_5", "Reliable", "Get five practical works approved.", lambda s: s.approved >= 5),
    AchievementDef("PERFECT_SCORE", "Flawless", "Receive a review at the top of the scale.", lambda s: s.perfect_reviews >= 1),
    AchievementDef("XP_100", "First hundred", "Earn 100 XP.", lambda s: s.total_xp >= 100),
    AchievementDef("XP_250", "Quarter thousand", "Earn 250 XP.", lambda s: s.total_xp >= 250),
    AchievementDef("XP_500", "Half thousand", "Earn 500 XP.", lambda s: s.total_xp >= 500),
    AchievementDef("XP_1000", "Thousander", "Earn 1000 XP.", lambda s: s.total_xp >= 1000),
    AchievementDef("XP_5000", "Legend", "Earn 5000 XP.", lambda s: s.total_xp >= 5000),
    AchievementDef("LEVEL_JUNIOR", "Junior confirmed", "Pass the Junior tier.", _tier(Tier.JUNIOR)),
    AchievementDef("LEVEL_MIDDLE", "Middle confirmed", "Pass the Middle tier.", _tier(Tier.MIDDLE)),
    AchievementDef("LEVEL_SENIOR", "Senior confirmed", "Pass the Senior tier.", _tier(Tier.SENIOR)),
    AchievementDef("FIRST_CERTIFICATE", "Certified", "Claim a first certificate.", lambda s: s.certificates >= 1),
    AchievementDef("CERTIFICATES_3", "Collector", "Claim three certificates.", lambda s: s.certificates >= 3),
)
_BY_CODE: Dict[str, AchievementDef] = {item.code: item for item in CATALOGUE}


class AchievementView(BaseModel):
    code: str
    name: str
    description: str
    awarded_at: datetime


def _count(session: Session, stmt) -> int:
    return int(session.execute(stmt).scalar_one())


def learner_stats(session: Session, learner: str, *, score_max: float) -> LearnerStats:
    """Counters across every enrollment of ``learner``."""
    by_learner = EnrollmentModel.learner == learner
    submissions = (
        select(func.count(SubmissionModel.id))
        .join(EnrollmentModel, SubmissionModel.enrollment_id == EnrollmentModel.id)
        .where(by_learner)
    )
    perfect = (
        select(func.count(ReviewModel.id))
        .join(SubmissionModel, ReviewModel.submission_id == SubmissionModel.id)
        .join(EnrollmentModel, SubmissionModel.enrollment_id == EnrollmentModel.id)
        .where(by_learner, ReviewModel.score >= score_max)
    )
    certificates = (
        select(func.count(CertificateModel.id))
        .join(EnrollmentModel, CertificateModel.enrollment_id == EnrollmentModel.id)
        .where(by_learner)
    )
    ladders = (
        select(LadderStateModel.passed_tiers)
        .join(EnrollmentModel, LadderStateModel.enrollment_id == EnrollmentModel.id)
        .where(by_learner)
    )
    passed: Set[Tier] = set()
    for tiers in session.execute(ladders).scalars():
        passed.update(Tier(value) for value in tiers or [])

    return LearnerStats(
        enrollments=_count(session, select(func.count(EnrollmentModel.id)).where(by_learner)),
        submissions=_count(session, submissions),
        approved=_count(session, submissions.where(SubmissionModel.status == SubmissionStatus.APPROVED.value)),
        perfect_reviews=_count(session, perfect),
        certificates=_count(session, certificates),
        total_xp=placements.xp_total(session, learner),
        passed_tiers=frozenset(passed),
    )


def award_achievements(session: Session, learner: str, *, score_max: float) -> List[str]:
    """Store every newly earned achievement for ``learner`` and return their codes."""
    learner = normalize_learner(learner)
    owned = set(
        session.execute(
            select(LearnerAchievementModel.code).where(LearnerAchievementModel.learner == learner)
        ).scalars()
    )
    stats = learner_stats(session, learner, score_max=score_max)
    awarded = [item.code for item in CATALOGUE if item.code not in owned and item.earned(stats)]
    for code in awarded:
        session.add(LearnerAchievementModel(learner=learner, code=code))
    session.flush()
    return awarded


def list_achievements(session: Session, learner: str) -> List[AchievementView]:
    stmt = (
        select(LearnerAchievementModel)
        .where(LearnerAchievementModel.learner == normalize_learner(learner))
        .order_by(LearnerAchievementModel.awarded_at.asc(), LearnerAchievementModel.code.asc())
    )
    views: List[AchievementView] = []
    for record in session.execute(stmt).scalars():
        definition = _BY_CODE.get(record.code)
        if definition is None:
            logger.warning("Skipping retired achievement %s for learner=%s", record.code, record.learner)
            continue
        views.append(
            AchievementView(
                code=record.code,
                name=definition.name,
                description=definition.description,
                awarded_at=record.awarded_at,
            )
        )
    return views


def _on_event(event: TelemetryEvent) -> None:
    if event.name not in _TRIGGER_EVENTS:
        return
    learner = event.payload.get("learner")
    if not isinstance(learner, str) or not learner.strip():
        return
    try:
        with session_scope() as session:
            awarded = award_achievements(session, learner, score_max=get_settings().review_score_max)
    except Exception:  # noqa: BLE001
        logger.exception("Failed to award achievements for learner=%s after %s", learner, event.name)
        return
    for code in awarded:
        emit_event("achievement_earned", learner=learner, code=code, trigger=event.name)


def install_achievement_listener() -> None:
    register_listener(_on_event)


__all__ = [
    "CATALOGUE",
    "AchievementDef",
    "AchievementView",
    "LearnerStats",
    "award_achievements",
    "install_achievement_listener",
    "learner_stats",
    "list_achievements",
]
