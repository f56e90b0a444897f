import os
from functools import lru_cache
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: Optional[str] = Field(None, alias="SKILL_LADDER_DATABASE_URL")
    database_pool_size: int = Field(10, alias="SKILL_LADDER_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="SKILL_LADDER_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="SKILL_LADDER_DATABASE_ECHO")
    lock_timeout_seconds: float = Field(2.0, ge=0.0, alias="SKILL_LADDER_LOCK_TIMEOUT_SECONDS")
    review_score_max: float = Field(10.0, gt=0.0, alias="SKILL_LADDER_REVIEW_SCORE_MAX")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid placement configuration: {exc}") from exc
