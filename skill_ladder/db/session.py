"""Engine and session helpers for the placement store.

Mutations go through ``session_scope()``, which commits once on success.
Snapshot reads use ``session_scope(commit=False)``; such a session is marked
read-only and refuses to flush pending writes.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Generator, Optional

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from ..config import Settings, get_settings
from ..errors import InvariantViolation
from .monitoring import instrument_engine

READ_ONLY = "placement_read_only"

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker[Session]] = None


def _build_engine(settings: Settings) -> Engine:
    database_url = settings.database_url
    if not database_url:
        raise RuntimeError("SKILL_LADDER_DATABASE_URL must be configured before using the database.")

    kwargs: dict[str, Any] = {"echo": settings.database_echo, "future": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs["pool_pre_ping"] = True
        kwargs["pool_size"] = settings.database_pool_size
        kwargs["max_overflow"] = settings.database_max_overflow
    return create_engine(database_url, **kwargs)


def _refuse_read_only_flush(session: Session, flush_context: Any, instances: Any) -> None:
    if session.info.get(READ_ONLY) and (session.new or session.dirty or session.deleted):
        raise InvariantViolation("A read-only placement session attempted to write.")


def get_engine() -> Engine:
    global _engine, _session_factory
    if _engine is None:
        _engine = _build_engine(get_settings())
        instrument_engine(_engine)
        factory = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)
        event.listen(factory, "before_flush", _refuse_read_only_flush)
        _session_factory = factory
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    if _session_factory is None:
        get_engine()
    assert _session_factory is not None
    return _session_factory


@contextmanager
def session_scope(*, commit: bool = True) -> Generator[Session, None, None]:
    session = get_session_factory()()
    session.info[READ_ONLY] = not commit
    try:
        yield session
        if commit:
            session.commit()
    except Exception:  # noqa: BLE001
        session.rollback()
        raise
    finally:
        session.close()


def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


__all__ = [
    "READ_ONLY",
    "dispose_engine",
    "get_engine",
    "get_session_factory",
    "session_scope",
]
