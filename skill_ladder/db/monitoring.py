"""Connection hooks: SQLite pragmas and pool counters for health reporting."""

from __future__ import annotations

import os
import time
import weakref
from dataclasses import asdict, dataclass
from typing import Any, Dict

from sqlalchemy import event
from sqlalchemy.engine import Engine

from ..telemetry import emit_event

_TELEMETRY_INTERVAL = float(os.getenv("SKILL_LADDER_DB_TELEMETRY_INTERVAL", "60"))
_SQLITE_BUSY_TIMEOUT_MS = 5000


@dataclass
class PoolCounters:
    connects: int = 0
    checkouts: int = 0
    checkins: int = 0
    last_emit: float = 0.0

    def public(self) -> Dict[str, int]:
        payload = asdict(self)
        payload.pop("last_emit")
        return payload


_COUNTERS: "weakref.WeakKeyDictionary[Engine, PoolCounters]" = weakref.WeakKeyDictionary()


def instrument_engine(engine: Engine) -> None:
    """Attach connection listeners once per engine."""
    if engine in _COUNTERS:
        return
    counters = PoolCounters()
    _COUNTERS[engine] = counters
    is_sqlite = engine.dialect.name == "sqlite"

    def maybe_emit(trigger: str) -> None:
        now = time.time()
        if _TELEMETRY_INTERVAL > 0 and (now - counters.last_emit) < _TELEMETRY_INTERVAL:
            return
        counters.last_emit = now
        emit_event("db_pool_status", trigger=trigger, status=_pool_status(engine), **counters.public())

    def on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        if is_sqlite:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute(f"PRAGMA busy_timeout={_SQLITE_BUSY_TIMEOUT_MS}")
            cursor.close()
        counters.connects += 1
        maybe_emit("connect")

    def on_checkout(dbapi_connection: Any, connection_record: Any, connection_proxy: Any) -> None:
        counters.checkouts += 1
        maybe_emit("checkout")

    def on_checkin(dbapi_connection: Any, connection_record: Any) -> None:
        counters.checkins += 1

    event.listen(engine, "connect", on_connect)
    event.listen(engine, "checkout", on_checkout)
    event.listen(engine, "checkin", on_checkin)


def get_pool_snapshot(engine: Engine) -> Dict[str, object]:
    counters = _COUNTERS.get(engine) or PoolCounters()
    return {"status": _pool_status(engine), **counters.public()}


def _pool_status(engine: Engine) -> str:
    try:
        return engine.pool.status()
    except Exception as exc:  # pragma: no cover - pool implementations vary
        return f"unavailable: {exc}"


__all__ = ["PoolCounters", "get_pool_snapshot", "instrument_engine"]
