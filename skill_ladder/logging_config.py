import logging
import os
from logging.config import dictConfig
from typing import Any, Dict

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _level(variable: str, default: str) -> str:
    value = os.getenv(variable, default).strip().upper()
    return value if isinstance(logging.getLevelName(value), int) else default


def build_logging_config() -> Dict[str, Any]:
    """Logging layout for the placement service.

    ``SKILL_LADDER_LOG_LEVEL`` sets the root level. ``SKILL_LADDER_TELEMETRY_LOG_LEVEL``
    controls the ``TELEMETRY {json}`` event lines separately, and
    ``SKILL_LADDER_DEBUG_SQL=1`` turns on statement logging.
    """
    root_level = _level("SKILL_LADDER_LOG_LEVEL", "INFO")
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": {"format": DEFAULT_LOG_FORMAT}},
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
            },
        },
        "loggers": {
            "skill_ladder.telemetry": {"level": _level("SKILL_LADDER_TELEMETRY_LOG_LEVEL", root_level)},
            "sqlalchemy.engine": {
                "level": "DEBUG" if os.getenv("SKILL_LADDER_DEBUG_SQL", "0") == "1" else "WARNING",
            },
        },
        "root": {"handlers": ["default"], "level": root_level},
    }


def configure_logging() -> None:
    dictConfig(build_logging_config())
