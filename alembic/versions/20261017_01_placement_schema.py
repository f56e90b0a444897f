"""Placement schema: content, enrollments, ladders, submissions and certificates."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261017_01_placement_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "tracks",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("slug", sa.String(length=128), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("slug", name="uq_tracks_slug"),
    )

    op.create_table(
        "units",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("track_id", sa.String(length=36), sa.ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("tier", sa.String(length=16), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("xp_value", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("question", sa.JSON(), nullable=True),
        sa.UniqueConstraint("track_id", "kind", "position", name="uq_unit_track_kind_position"),
    )
    op.create_index("ix_units_track", "units", ["track_id"])

    op.create_table(
        "enrollments",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("learner", sa.String(length=128), nullable=False),
        sa.Column("track_id", sa.String(length=36), sa.ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.UniqueConstraint("learner", "track_id", name="uq_enrollment_learner_track"),
    )
    op.create_index("ix_enrollments_learner", "enrollments", ["learner"])

    op.create_table(
        "ladder_states",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "enrollment_id",
            sa.String(length=36),
            sa.ForeignKey("enrollments.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("current_tier", sa.String(length=16), nullable=False),
        sa.Column("passed_tiers", sa.JSON(), nullable=False),
        sa.Column("last_verdict", sa.String(length=16), nullable=True),
        sa.Column("last_verdict_tier", sa.String(length=16), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )

    op.create_table(
        "assessment_progress",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("enrollment_id", sa.String(length=36), sa.ForeignKey("enrollments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("unit_id", sa.String(length=64), sa.ForeignKey("units.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="not_started"),
        sa.Column("attempts_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("earned_xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("enrollment_id", "unit_id", name="uq_assessment_progress_unit"),
    )

    op.create_table(
        "submissions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("enrollment_id", sa.String(length=36), sa.ForeignKey("enrollments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("unit_id", sa.String(length=64), sa.ForeignKey("units.id", ondelete="CASCADE"), nullable=False),
        sa.Column("tier", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("github_url", sa.Text(), nullable=True),
        sa.Column("deploy_url", sa.Text(), nullable=True),
        sa.Column("file_url", sa.Text(), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("awarded_xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("submitted_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_submissions_enrollment_unit", "submissions", ["enrollment_id", "unit_id"])
    op.create_index("ix_submissions_status", "submissions", ["status"])

    op.create_table(
        "reviews",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "submission_id",
            sa.String(length=36),
            sa.ForeignKey("submissions.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("grader", sa.String(length=128), nullable=False),
        sa.Column("score", sa.Float(), nullable=False),
        sa.Column("verdict", sa.String(length=16), nullable=False),
        sa.Column("strengths", sa.Text(), nullable=True),
        sa.Column("improvements", sa.Text(), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )

    op.create_table(
        "certificates",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "enrollment_id",
            sa.String(length=36),
            sa.ForeignKey("enrollments.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("code", sa.String(length=32), nullable=False, unique=True),
        sa.Column("level", sa.String(length=16), nullable=False),
        sa.Column("total_xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("issued_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )

    op.create_table(
        "placement_audit_events",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("enrollment_id", sa.String(length=36), sa.ForeignKey("enrollments.id", ondelete="SET NULL"), nullable=True),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("actor", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index("ix_placement_audit_events_enrollment", "placement_audit_events", ["enrollment_id"])


def downgrade() -> None:
    op.drop_index("ix_placement_audit_events_enrollment", table_name="placement_audit_events")
    op.drop_table("placement_audit_events")
    op.drop_table("certificates")
    op.drop_table("reviews")
    op.drop_index("ix_submissions_status", table_name="submissions")
    op.drop_index("ix_submissions_enrollment_unit", table_name="submissions")
    op.drop_table("submissions")
    op.drop_table("assessment_progress")
    op.drop_table("ladder_states")
    op.drop_index("ix_enrollments_learner", table_name="enrollments")
    op.drop_table("enrollments")
    op.drop_index("ix_units_track", table_name="units")
    op.drop_table("units")
    op.drop_table("tracks")
