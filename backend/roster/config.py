import os
from functools import lru_cache
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=os.getenv("ENV_FILE", ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        populate_by_name=True,
    )

    database_url: str = Field("sqlite:///students.db", alias="ROSTER_DATABASE_URL")
    database_echo: bool = Field(False, alias="ROSTER_DATABASE_ECHO")
    database_pool_size: int = Field(5, alias="ROSTER_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="ROSTER_DATABASE_MAX_OVERFLOW")
    create_schema: bool = Field(True, alias="ROSTER_CREATE_SCHEMA")
    default_credits: int = Field(4, gt=0, alias="ROSTER_DEFAULT_CREDITS")
    task_workers: int = Field(4, gt=0, alias="ROSTER_TASK_WORKERS")
    log_level: Optional[str] = Field(None, alias="ROSTER_LOG_LEVEL")


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid roster configuration: {exc}") from exc
