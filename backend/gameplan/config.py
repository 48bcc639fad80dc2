import os
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=os.getenv("ENV_FILE", ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    database_url: Optional[str] = Field(None, alias="GAMEPLAN_DATABASE_URL")
    database_pool_size: int = Field(10, alias="GAMEPLAN_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="GAMEPLAN_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="GAMEPLAN_DATABASE_ECHO")
    persistence_mode: Literal["database", "legacy"] = Field(
        "database",
        alias="GAMEPLAN_PERSISTENCE_MODE",
    )
    legacy_store_path: Optional[str] = Field(None, alias="GAMEPLAN_LEGACY_STORE_PATH")
    default_sort_mode: Literal["auto", "manual", "timeline"] = Field(
        "auto",
        alias="GAMEPLAN_DEFAULT_SORT_MODE",
    )
    max_templates: int = Field(20, ge=1, alias="GAMEPLAN_MAX_TEMPLATES")


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid game plan configuration: {exc}") from exc
