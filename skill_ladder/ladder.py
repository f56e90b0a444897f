"""Three-tier placement ladder: value types and the verdict transition table.

The ladder is stored as the current tier plus a monotonic set of passed tiers.
Per-tier slot statuses (locked / pending / passed) are derived on read, so they
can never drift out of sync with ``current_tier``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, FrozenSet, Iterable, Optional, Tuple


class Tier(str, Enum):
    JUNIOR = "junior"
    MIDDLE = "middle"
    SENIOR = "senior"


class SlotStatus(str, Enum):
    LOCKED = "locked"
    PENDING = "pending"
    PASSED = "passed"


class Verdict(str, Enum):
    APPROVED = "approved"
    REVISION = "revision"
    FAILED = "failed"


TIER_ORDER: Tuple[Tier, ...] = (Tier.JUNIOR, Tier.MIDDLE, Tier.SENIOR)
INITIAL_TIER = Tier.MIDDLE


@dataclass(frozen=True)
class LadderState:
    current_tier: Tier = INITIAL_TIER
    passed: FrozenSet[Tier] = frozenset()
    last_verdict: Optional[Verdict] = None
    last_verdict_tier: Optional[Tier] = None

    @property
    def settled_at_ceiling(self) -> bool:
        return Tier.SENIOR in self.passed

    @property
    def settled_at_floor(self) -> bool:
        return self.last_verdict_tier is Tier.JUNIOR and self.last_verdict is Verdict.FAILED

    @property
    def is_terminal(self) -> bool:
        """Placement is complete after Approved@Senior or Failed@Junior."""
        return self.settled_at_ceiling or self.settled_at_floor

    def slot(self, tier: Tier) -> SlotStatus:
        if tier is self.current_tier and not (tier in self.passed and self.settled_at_ceiling):
            return SlotStatus.PENDING
        if tier in self.passed:
            return SlotStatus.PASSED
        return SlotStatus.LOCKED

    @property
    def slots(self) -> Dict[Tier, SlotStatus]:
        return {tier: self.slot(tier) for tier in TIER_ORDER}

    def accepts_work_at(self, tier: Tier) -> bool:
        return tier is self.current_tier and self.slot(tier) is SlotStatus.PENDING

    def highest_passed(self) -> Optional[Tier]:
        for tier in reversed(TIER_ORDER):
            if tier in self.passed:
                return tier
        return None


def initial_ladder() -> LadderState:
    return LadderState(current_tier=INITIAL_TIER)


def ladder_from_record(
    current_tier: str,
    passed_tiers: Iterable[str],
    last_verdict: Optional[str] = None,
    last_verdict_tier: Optional[str] = None,
) -> LadderState:
    return LadderState(
        current_tier=Tier(current_tier),
        passed=frozenset(Tier(value) for value in passed_tiers),
        last_verdict=Verdict(last_verdict) if last_verdict else None,
        last_verdict_tier=Tier(last_verdict_tier) if last_verdict_tier else None,
    )


def _record(state: LadderState, tier: Tier, verdict: Verdict, **changes: object) -> LadderState:
    return replace(state, last_verdict=verdict, last_verdict_tier=tier, **changes)


def _approve_junior(state: LadderState) -> LadderState:
    return _record(state, Tier.JUNIOR, Verdict.APPROVED, passed=state.passed | {Tier.JUNIOR}, current_tier=Tier.MIDDLE)


def _approve_middle(state: LadderState) -> LadderState:
    return _record(state, Tier.MIDDLE, Verdict.APPROVED, passed=state.passed | {Tier.MIDDLE}, current_tier=Tier.SENIOR)


def _approve_senior(state: LadderState) -> LadderState:
    # Ceiling: nothing above Senior opens.
    return _record(state, Tier.SENIOR, Verdict.APPROVED, passed=state.passed | {Tier.SENIOR}, current_tier=Tier.SENIOR)


def _revise_junior(state: LadderState) -> LadderState:
    return _record(state, Tier.JUNIOR, Verdict.REVISION, current_tier=Tier.JUNIOR)


def _revise_middle(state: LadderState) -> LadderState:
    return _record(state, Tier.MIDDLE, Verdict.REVISION, current_tier=Tier.MIDDLE)


def _revise_senior(state: LadderState) -> LadderState:
    return _record(state, Tier.SENIOR, Verdict.REVISION, current_tier=Tier.SENIOR)


def _fail_junior(state: LadderState) -> LadderState:
    # Floor: no demotion below Junior, the slot stays open for resubmission.
    return _record(state, Tier.JUNIOR, Verdict.FAILED, current_tier=Tier.JUNIOR)


def _fail_middle(state: LadderState) -> LadderState:
    return _record(state, Tier.MIDDLE, Verdict.FAILED, current_tier=Tier.JUNIOR)


def _fail_senior(state: LadderState) -> LadderState:
    return _record(state, Tier.SENIOR, Verdict.FAILED, current_tier=Tier.MIDDLE)


_TRANSITIONS: Dict[Tuple[Tier, Verdict], Callable[[LadderState], LadderState]] = {
    (Tier.JUNIOR, Verdict.APPROVED): _approve_junior,
    (Tier.MIDDLE, Verdict.APPROVED): _approve_middle,
    (Tier.SENIOR, Verdict.APPROVED): _approve_senior,
    (Tier.JUNIOR, Verdict.REVISION): _revise_junior,
    (Tier.MIDDLE, Verdict.REVISION): _revise_middle,
    (Tier.SENIOR, Verdict.REVISION): _revise_senior,
    (Tier.JUNIOR, Verdict.FAILED): _fail_junior,
    (Tier.MIDDLE, Verdict.FAILED): _fail_middle,
    (Tier.SENIOR, Verdict.FAILED): _fail_senior,
}


def apply_verdict(state: LadderState, tier: Tier, verdict: Verdict) -> LadderState:
    """Return the ladder after a grader's ``verdict`` on work at ``tier``."""
    return _TRANSITIONS[(Tier(tier), Verdict(verdict))](state)


@dataclass(frozen=True)
class LadderTransition:
    before: LadderState
    after: LadderState
    tier: Tier
    verdict: Verdict
    applied: bool = True

    @property
    def changed(self) -> bool:
        """Whether the placement moved: current tier, passed tiers or completion."""
        before, after = self.before, self.after
        return (before.current_tier, before.passed, before.is_terminal) != (
            after.current_tier,
            after.passed,
            after.is_terminal,
        )


__all__ = [
    "INITIAL_TIER",
    "LadderState",
    "LadderTransition",
    "SlotStatus",
    "TIER_ORDER",
    "Tier",
    "Verdict",
    "apply_verdict",
    "initial_ladder",
    "ladder_from_record",
]
