"""Typed rejections raised by placement operations."""

from __future__ import annotations

from typing import Any, Dict


class PlacementError(Exception):
    """Base class for recoverable, caller-facing placement errors."""

    code = "placement_error"
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def as_detail(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "retryable": self.retryable}


class NotFound(PlacementError):
    code = "not_found"


class NotEligible(PlacementError):
    code = "not_eligible"


class AlreadyResolved(PlacementError):
    code = "already_resolved"


class AlreadyReviewed(PlacementError):
    code = "already_reviewed"


class SubmissionInFlight(PlacementError):
    code = "submission_in_flight"


class Conflict(PlacementError):
    """A concurrent write on the same (learner, track) won the race; retry."""

    code = "conflict"
    retryable = True


class InvariantViolation(RuntimeError):
    """Persisted placement state contradicts an engine invariant.

    Not a caller error: the operation is refused and the state is left for an
    operator to inspect instead of being repaired silently.
    """

    code = "placement_invariant_violation"


__all__ = [
    "AlreadyResolved",
    "AlreadyReviewed",
    "Conflict",
    "InvariantViolation",
    "NotEligible",
    "NotFound",
    "PlacementError",
    "SubmissionInFlight",
]
