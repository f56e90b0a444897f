"""Upsert track definitions from JSON files into the content tables.

Each file holds either one track definition or a list of them, in the shape
accepted by ``skill_ladder.content.TrackDefinition``.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from skill_ladder.content import TrackDefinition, content_store
from skill_ladder.db.base import Base
from skill_ladder.db.session import get_engine, session_scope

logger = logging.getLogger("skill_ladder.seed")


def _ensure_database() -> None:
    engine = get_engine()
    Base.metadata.create_all(engine)


def load_definitions(path: Path) -> List[TrackDefinition]:
    with path.open(encoding="utf-8") as handle:
        payload = json.load(handle)
    entries = payload if isinstance(payload, list) else [payload]
    definitions: List[TrackDefinition] = []
    for entry in entries:
        try:
            definitions.append(TrackDefinition.model_validate(entry))
        except ValidationError as exc:
            logger.warning("Skipping invalid track definition in %s: %s", path, exc)
    return definitions


def seed_tracks(paths: List[Path]) -> int:
    seeded = 0
    with session_scope() as session:
        for path in paths:
            if not path.exists():
                logger.info("No track definitions found at %s", path)
                continue
            for definition in load_definitions(path):
                content_store.load_track_definition(session, definition)
                seeded += 1
    logger.info("Seeded %d tracks", seeded)
    return seeded


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Load track definitions into the placement database.")
    parser.add_argument("paths", nargs="+", type=Path, help="JSON files containing track definitions.")
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="Create missing tables from the ORM metadata instead of relying on migrations.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    args = parse_args(argv)
    try:
        if args.create_schema:
            _ensure_database()
        seed_tracks(args.paths)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Seeding failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
