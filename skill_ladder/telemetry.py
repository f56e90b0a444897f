"""Event fan-out for notification and analytics collaborators.

``emit_event`` logs the event on the caller's thread and hands delivery to a
single background worker, so listeners see events in emission order and a
slow consumer never holds up a placement response.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from threading import RLock
from typing import Any, Callable, Dict, List, Sequence

logger = logging.getLogger("skill_ladder.telemetry")

Listener = Callable[["TelemetryEvent"], None]


@dataclass(frozen=True)
class TelemetryEvent:
    name: str
    payload: Dict[str, Any]


_listeners: List[Listener] = []
_lock = RLock()
_dispatcher = ThreadPoolExecutor(max_workers=1, thread_name_prefix="placement-events")


def register_listener(listener: Listener) -> None:
    """Register an in-process listener (notification dispatcher, analytics, tests)."""
    with _lock:
        _listeners.append(listener)


def clear_listeners() -> None:
    with _lock:
        _listeners.clear()


def emit_event(name: str, **fields: Any) -> None:
    payload = _sanitize(fields)
    event = TelemetryEvent(name=name, payload=payload)
    logger.info("TELEMETRY %s", json.dumps({"event": name, **payload}, default=_json_default))

    with _lock:
        listeners = list(_listeners)
    if not listeners:
        return
    try:
        _dispatcher.submit(_deliver, event, listeners)
    except RuntimeError:
        # Raised once the interpreter is shutting down.
        logger.warning("Dropped telemetry event %s; dispatcher is shut down", name)


def flush_events(timeout: float = 5.0) -> None:
    """Block until every event emitted so far has reached its listeners."""
    marker: Future = _dispatcher.submit(lambda: None)
    marker.result(timeout=timeout)


def _deliver(event: TelemetryEvent, listeners: Sequence[Listener]) -> None:
    for listener in listeners:
        try:
            listener(event)
        except Exception:  # noqa: BLE001
            logger.exception("Telemetry listener failed for %s", event.name)


def _sanitize(fields: Dict[str, Any]) -> Dict[str, Any]:
    sanitized: Dict[str, Any] = {}
    for key, value in fields.items():
        if isinstance(value, datetime):
            sanitized[key] = value.isoformat()
        elif isinstance(value, Enum):
            sanitized[key] = value.value
        else:
            sanitized[key] = value
    return sanitized


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


__all__ = [
    "TelemetryEvent",
    "clear_listeners",
    "emit_event",
    "flush_events",
    "register_listener",
]
