"""Read-only access to track and unit definitions.

Content authoring lives elsewhere; this module validates imported track
definitions once and serves them to the engine as typed values.
"""

from __future__ import annotations

import logging
from typing import List, Literal, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError, model_validator
from sqlalchemy import select
from sqlalchemy.orm import Session

from .db.models import TrackModel, UnitModel
from .errors import InvariantViolation, NotFound
from .ladder import Tier
from .questions import Question, parse_question

logger = logging.getLogger(__name__)

UnitKind = Literal["assessment", "practical"]


class UnitDefinition(BaseModel):
    unit_id: str = Field(..., min_length=1, max_length=64)
    kind: UnitKind
    title: str = Field(..., min_length=1)
    position: int = Field(..., ge=0)
    xp_value: int = Field(default=0, ge=0)
    tier: Optional[Tier] = None
    question: Optional[Question] = None

    @model_validator(mode="after")
    def _check_kind_fields(self) -> "UnitDefinition":
        if self.kind == "practical":
            if self.tier is None:
                raise ValueError(f"Practical unit '{self.unit_id}' needs a tier.")
            if self.question is not None:
                raise ValueError(f"Practical unit '{self.unit_id}' cannot carry a question.")
        else:
            if self.question is None:
                raise ValueError(f"Assessment unit '{self.unit_id}' needs a question.")
            if self.tier is not None:
                raise ValueError(f"Assessment unit '{self.unit_id}' cannot carry a tier.")
        return self


class TrackDefinition(BaseModel):
    slug: str = Field(..., min_length=1, max_length=128)
    title: str = Field(..., min_length=1)
    is_published: bool = True
    units: List[UnitDefinition] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_positions(self) -> "TrackDefinition":
        seen: set[tuple[str, int]] = set()
        ids: set[str] = set()
        for unit in self.units:
            key = (unit.kind, unit.position)
            if key in seen:
                raise ValueError(f"Duplicate {unit.kind} position {unit.position} in track '{self.slug}'.")
            if unit.unit_id in ids:
                raise ValueError(f"Duplicate unit id '{unit.unit_id}' in track '{self.slug}'.")
            seen.add(key)
            ids.add(unit.unit_id)
        return self


def normalize_slug(slug: str) -> str:
    normalized = slug.strip().lower()
    if not normalized:
        raise NotFound("Track slug cannot be empty.")
    return normalized


class ContentStore:
    """Lookups over the track/unit tables. Never mutates content during placement."""

    def require_track(self, session: Session, slug: str) -> TrackModel:
        normalized = normalize_slug(slug)
        track = session.execute(select(TrackModel).where(TrackModel.slug == normalized)).scalar_one_or_none()
        if track is None:
            raise NotFound(f"Track '{slug}' was not found.")
        return track

    def require_unit(self, session: Session, unit_id: str) -> UnitModel:
        unit = session.get(UnitModel, unit_id.strip())
        if unit is None:
            raise NotFound(f"Unit '{unit_id}' was not found.")
        return unit

    def assessment_units(self, session: Session, track_id: str) -> Sequence[UnitModel]:
        stmt = (
            select(UnitModel)
            .where(UnitModel.track_id == track_id, UnitModel.kind == "assessment")
            .order_by(UnitModel.position.asc())
        )
        return session.execute(stmt).scalars().all()

    @staticmethod
    def question_for(unit: UnitModel) -> Question:
        if unit.question is None:
            logger.error("Assessment unit %s has no stored question", unit.id)
            raise InvariantViolation(f"Assessment unit '{unit.id}' has no question.")
        try:
            return parse_question(unit.question)
        except ValidationError as exc:
            logger.error("Stored question for unit %s is malformed: %s", unit.id, exc)
            raise InvariantViolation(f"Stored question for unit '{unit.id}' is malformed.") from exc

    def load_track_definition(self, session: Session, definition: TrackDefinition) -> TrackModel:
        """Insert or refresh a track and its units from a validated definition."""
        slug = normalize_slug(definition.slug)
        track = session.execute(select(TrackModel).where(TrackModel.slug == slug)).scalar_one_or_none()
        if track is None:
            track = TrackModel(slug=slug, title=definition.title)
            session.add(track)
            session.flush()
        track.title = definition.title
        track.is_published = definition.is_published

        existing = {unit.id: unit for unit in track.units}
        for entry in definition.units:
            unit = existing.get(entry.unit_id)
            if unit is None:
                owner = session.get(UnitModel, entry.unit_id)
                if owner is not None:
                    raise ValueError(f"Unit '{entry.unit_id}' already belongs to another track.")
                unit = UnitModel(id=entry.unit_id, track_id=track.id)
                session.add(unit)
            unit.kind = entry.kind
            unit.title = entry.title
            unit.position = entry.position
            unit.xp_value = entry.xp_value
            unit.tier = entry.tier.value if entry.tier else None
            unit.question = entry.question.model_dump(mode="json") if entry.question else None
        session.flush()
        logger.info("Loaded track %s with %d units", slug, len(definition.units))
        return track


content_store = ContentStore()

__all__ = ["ContentStore", "TrackDefinition", "UnitDefinition", "content_store", "normalize_slug"]
