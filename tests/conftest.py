from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterator, List

import pytest

from skill_ladder.config import get_settings
from skill_ladder.content import TrackDefinition, content_store
from skill_ladder.db.base import Base
from skill_ladder.db.session import dispose_engine, get_engine, session_scope
from skill_ladder.engine import PlacementEngine, get_placement_engine
from skill_ladder.questions import OrderingAnswer, SingleChoiceAnswer
from skill_ladder.telemetry import TelemetryEvent, clear_listeners, flush_events, register_listener

TRACK_SLUG = "python-backend"

TRACK_DEFINITION = {
    "slug": TRACK_SLUG,
    "title": "Python Backend",
    "units": [
        {
            "unit_id": "pb-check-1",
            "kind": "assessment",
            "title": "HTTP basics",
            "position": 0,
            "xp_value": 20,
            "question": {
                "kind": "single_choice",
                "prompt": "Which method is idempotent?",
                "options": ["POST", "PUT", "PATCH"],
                "correct_option": 1,
            },
        },
        {
            "unit_id": "pb-check-2",
            "kind": "assessment",
            "title": "Request lifecycle",
            "position": 1,
            "xp_value": 30,
            "question": {
                "kind": "ordering",
                "prompt": "Order the request lifecycle.",
                "items": [
                    {"id": "route", "text": "Route match"},
                    {"id": "validate", "text": "Validate body"},
                    {"id": "respond", "text": "Send response"},
                ],
                "correct_order": ["route", "validate", "respond"],
            },
        },
        {"unit_id": "pb-junior", "kind": "practical", "title": "CRUD API", "position": 0, "xp_value": 50, "tier": "junior"},
        {"unit_id": "pb-middle", "kind": "practical", "title": "Auth service", "position": 1, "xp_value": 100, "tier": "middle"},
        {"unit_id": "pb-senior", "kind": "practical", "title": "Event pipeline", "position": 2, "xp_value": 150, "tier": "senior"},
    ],
}

CORRECT_ANSWERS = {
    "pb-check-1": SingleChoiceAnswer(selected_option=1),
    "pb-check-2": OrderingAnswer(order=["route", "validate", "respond"]),
}
WRONG_ANSWERS = {
    "pb-check-1": SingleChoiceAnswer(selected_option=0),
    "pb-check-2": OrderingAnswer(order=["validate", "route", "respond"]),
}

ARTIFACTS = {"github_url": "https://github.com/learner/project"}


@pytest.fixture
def placement_db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    db_path = tmp_path / "placement.db"
    monkeypatch.setenv("SKILL_LADDER_DATABASE_URL", f"sqlite:///{db_path}")
    get_settings.cache_clear()
    get_placement_engine.cache_clear()
    dispose_engine()
    engine = get_engine()
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    clear_listeners()
    yield
    flush_events()
    clear_listeners()
    dispose_engine()
    get_settings.cache_clear()
    get_placement_engine.cache_clear()


@pytest.fixture
def load_track(placement_db: None) -> Callable[[dict], str]:
    def _load(definition: dict) -> str:
        parsed = TrackDefinition.model_validate(definition)
        with session_scope() as session:
            content_store.load_track_definition(session, parsed)
        return parsed.slug

    return _load


@pytest.fixture
def track(load_track: Callable[[dict], str]) -> str:
    return load_track(TRACK_DEFINITION)


@pytest.fixture
def engine(placement_db: None) -> PlacementEngine:
    return PlacementEngine(lock_timeout=2.0)


@pytest.fixture
def events(placement_db: None) -> List[TelemetryEvent]:
    recorded: List[TelemetryEvent] = []

    def _record(event: TelemetryEvent) -> None:
        if event.name != "db_pool_status":
            recorded.append(event)

    register_listener(_record)
    return recorded


@pytest.fixture
def pass_assessments(engine: PlacementEngine, track: str) -> Callable[[str], None]:
    """Enroll ``learner`` and answer every assessment correctly on the first try."""

    def _pass(learner: str) -> None:
        engine.enroll(learner, track)
        for unit_id, response in CORRECT_ANSWERS.items():
            result = engine.answer(learner, unit_id, response)
            assert result.correct

    return _pass
