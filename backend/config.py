"""Конфигурация сервера."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Настройки сервера."""

    model_config = SettingsConfigDict(env_prefix="PERFBUDGET_", env_file=".env", extra="ignore")

    # Storage
    storage_method: Literal["sql", "redis"] = "sql"
    sql_database_path: str = "perfbudget.db"  # ":memory:" для тестов

    # Redis
    redis_url: str = "redis://localhost:6379"
    redis_prefix: str = "perfbudget"

    # Server
    host: str = "0.0.0.0"
    port: int = 9001
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
