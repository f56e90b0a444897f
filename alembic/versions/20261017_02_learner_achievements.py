"""Learner achievements awarded from placement events."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261017_02_learner_achievements"
down_revision = "20261017_01_placement_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "learner_achievements",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("learner", sa.String(length=128), nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("awarded_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.UniqueConstraint("learner", "code", name="uq_learner_achievement"),
    )
    op.create_index("ix_learner_achievements_learner", "learner_achievements", ["learner"])


def downgrade() -> None:
    op.drop_index("ix_learner_achievements_learner", table_name="learner_achievements")
    op.drop_table("learner_achievements")
