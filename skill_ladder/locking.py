"""Per-(learner, track) serialization for mutating placement operations."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Generator, Optional, Tuple

from .errors import Conflict

logger = logging.getLogger(__name__)

PairKey = Tuple[str, str]


def normalize_learner(learner: str) -> str:
    normalized = learner.strip().lower()
    if not normalized:
        raise ValueError("Learner id cannot be empty.")
    return normalized


@dataclass
class _PairLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class PairLockRegistry:
    """Hands out one lock per (learner, track) pair.

    Pairs never share a lock, so different learners or tracks do not contend.
    Waiting is bounded by ``timeout``; an expired wait raises ``Conflict``.
    An entry lives only while some caller holds or waits on it.
    """

    def __init__(self, timeout: float = 2.0) -> None:
        self._timeout = timeout
        self._locks: Dict[PairKey, _PairLock] = {}
        self._guard = threading.Lock()

    def _checkout(self, key: PairKey) -> _PairLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = _PairLock()
                self._locks[key] = entry
            entry.users += 1
            return entry

    def _checkin(self, key: PairKey, entry: _PairLock) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, learner: str, track: str, *, timeout: Optional[float] = None) -> Generator[None, None, None]:
        key = (normalize_learner(learner), track.strip().lower())
        wait = self._timeout if timeout is None else timeout
        entry = self._checkout(key)
        try:
            if not entry.lock.acquire(timeout=wait):
                logger.warning("Placement lock busy for learner=%s track=%s after %.2fs", key[0], key[1], wait)
                raise Conflict(f"Another operation for '{key[0]}' on track '{key[1]}' is in progress; retry.")
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._checkin(key, entry)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


__all__ = ["PairLockRegistry", "normalize_learner"]
