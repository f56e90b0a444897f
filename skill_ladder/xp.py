"""XP decay for assessment attempts and learner levels derived from XP totals."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Optional, Tuple, Union

MAX_ATTEMPTS = 3

ATTEMPT_DECAY: Dict[int, float] = {
    1: 1.00,
    2: 0.65,
    3: 0.35,
}


def round_half_up(value: Union[float, Decimal]) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def decay(attempt: int) -> float:
    if attempt not in ATTEMPT_DECAY:
        raise ValueError(f"Attempt {attempt} is outside 1..{MAX_ATTEMPTS}.")
    return ATTEMPT_DECAY[attempt]


def decayed_xp(xp_value: int, attempt: int) -> int:
    # Decimal keeps 30 * 0.35 at exactly 10.5 before rounding.
    return round_half_up(Decimal(xp_value) * Decimal(str(decay(attempt))))


@dataclass(frozen=True)
class LearnerLevel:
    level: int
    name: str
    min_xp: int
    max_xp: Optional[int]


LEVELS: Tuple[LearnerLevel, ...] = (
    LearnerLevel(1, "Novice", 0, 100),
    LearnerLevel(2, "Apprentice", 100, 250),
    LearnerLevel(3, "Practitioner", 250, 500),
    LearnerLevel(4, "Specialist", 500, 1000),
    LearnerLevel(5, "Expert", 1000, 2000),
    LearnerLevel(6, "Master", 2000, 3500),
    LearnerLevel(7, "Guru", 3500, 5000),
    LearnerLevel(8, "Legend", 5000, None),
)


def level_for_xp(total_xp: int) -> LearnerLevel:
    current = LEVELS[0]
    for level in LEVELS:
        if total_xp >= level.min_xp:
            current = level
    return current


def xp_to_next_level(total_xp: int) -> Optional[int]:
    level = level_for_xp(total_xp)
    if level.max_xp is None:
        return None
    return level.max_xp - total_xp


__all__ = [
    "ATTEMPT_DECAY",
    "LEVELS",
    "LearnerLevel",
    "MAX_ATTEMPTS",
    "decay",
    "decayed_xp",
    "level_for_xp",
    "round_half_up",
    "xp_to_next_level",
]
