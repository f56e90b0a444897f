"""ORM models backing the placement engine."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from .base import Base, TimestampMixin

JSONType = JSON


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TrackModel(TimestampMixin, Base):
    __tablename__ = "tracks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    slug: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    is_published: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    units: Mapped[list["UnitModel"]] = relationship(
        back_populates="track", cascade="all, delete-orphan", order_by="UnitModel.position"
    )
    enrollments: Mapped[list["EnrollmentModel"]] = relationship(
        back_populates="track", cascade="all, delete-orphan"
    )


class UnitModel(TimestampMixin, Base):
    __tablename__ = "units"
    __table_args__ = (
        UniqueConstraint("track_id", "kind", "position", name="uq_unit_track_kind_position"),
        Index("ix_units_track", "track_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    track_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    tier: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    xp_value: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    question: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    track: Mapped[TrackModel] = relationship(back_populates="units")


class EnrollmentModel(TimestampMixin, Base):
    __tablename__ = "enrollments"
    __table_args__ = (UniqueConstraint("learner", "track_id", name="uq_enrollment_learner_track"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    learner: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    track_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_activity_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, nullable=False)

    track: Mapped[TrackModel] = relationship(back_populates="enrollments")
    ladder: Mapped[Optional["LadderStateModel"]] = relationship(
        back_populates="enrollment", cascade="all, delete-orphan", uselist=False
    )
    assessment_progress: Mapped[list["AssessmentProgressModel"]] = relationship(
        back_populates="enrollment", cascade="all, delete-orphan"
    )
    submissions: Mapped[list["SubmissionModel"]] = relationship(
        back_populates="enrollment", cascade="all, delete-orphan"
    )
    certificate: Mapped[Optional["CertificateModel"]] = relationship(
        back_populates="enrollment", cascade="all, delete-orphan", uselist=False
    )

    __mapper_args__ = {"version_id_col": version}


class LadderStateModel(Base):
    __tablename__ = "ladder_states"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    enrollment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("enrollments.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    current_tier: Mapped[str] = mapped_column(String(16), nullable=False)
    passed_tiers: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    last_verdict: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    last_verdict_tier: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, onupdate=_now, nullable=False
    )

    enrollment: Mapped[EnrollmentModel] = relationship(back_populates="ladder")


class AssessmentProgressModel(Base):
    __tablename__ = "assessment_progress"
    __table_args__ = (UniqueConstraint("enrollment_id", "unit_id", name="uq_assessment_progress_unit"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    enrollment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("enrollments.id", ondelete="CASCADE"), nullable=False
    )
    unit_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("units.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(16), default="not_started", nullable=False)
    attempts_used: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    earned_xp: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    enrollment: Mapped[EnrollmentModel] = relationship(back_populates="assessment_progress")
    unit: Mapped[UnitModel] = relationship()


class SubmissionModel(Base):
    __tablename__ = "submissions"
    __table_args__ = (
        Index("ix_submissions_enrollment_unit", "enrollment_id", "unit_id"),
        Index("ix_submissions_status", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    enrollment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("enrollments.id", ondelete="CASCADE"), nullable=False
    )
    unit_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("units.id", ondelete="CASCADE"), nullable=False
    )
    tier: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="pending", nullable=False)
    github_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    deploy_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    file_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    awarded_xp: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, nullable=False)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    enrollment: Mapped[EnrollmentModel] = relationship(back_populates="submissions")
    unit: Mapped[UnitModel] = relationship()
    review: Mapped[Optional["ReviewModel"]] = relationship(
        back_populates="submission", cascade="all, delete-orphan", uselist=False
    )


class ReviewModel(Base):
    __tablename__ = "reviews"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    submission_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    grader: Mapped[str] = mapped_column(String(128), nullable=False)
    score: Mapped[float] = mapped_column(Float, nullable=False)
    verdict: Mapped[str] = mapped_column(String(16), nullable=False)
    strengths: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    improvements: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, nullable=False)

    submission: Mapped[SubmissionModel] = relationship(back_populates="review")


class CertificateModel(Base):
    __tablename__ = "certificates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    enrollment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("enrollments.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    level: Mapped[str] = mapped_column(String(16), nullable=False)
    total_xp: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, nullable=False)

    enrollment: Mapped[EnrollmentModel] = relationship(back_populates="certificate")


class PlacementAuditEventModel(Base):
    __tablename__ = "placement_audit_events"
    __table_args__ = (Index("ix_placement_audit_events_enrollment", "enrollment_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    enrollment_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("enrollments.id", ondelete="SET NULL"), nullable=True
    )
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    actor: Mapped[Optional[str]] = mapped_column(String(128))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, nullable=False)


class LearnerAchievementModel(Base):
    __tablename__ = "learner_achievements"
    __table_args__ = (UniqueConstraint("learner", "code", name="uq_learner_achievement"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    learner: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    awarded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, nullable=False)


__all__ = [
    "AssessmentProgressModel",
    "CertificateModel",
    "EnrollmentModel",
    "LadderStateModel",
    "LearnerAchievementModel",
    "PlacementAuditEventModel",
    "ReviewModel",
    "SubmissionModel",
    "TrackModel",
    "UnitModel",
]
