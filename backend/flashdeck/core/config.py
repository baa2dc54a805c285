from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


class LoggingConfig(BaseModel):
    level: str = Field("INFO", alias="level")
    file: str = Field("./backend/logs/app.log", alias="file")
    max_bytes: int = Field(5_000_000, alias="max_bytes")
    backup_count: int = Field(5, alias="backup_count")
    # Level for the application loggers; defaults to the root level
    flashdeck_level: str = Field("", alias="flashdeck_level")


class DatabaseConfig(BaseModel):
    url: str = Field("sqlite:///./backend/data/flashdeck.db", alias="url")


class SecurityConfig(BaseModel):
    cors_origins: list[str] = Field(
        default=["http://localhost:5173", "http://127.0.0.1:5173"],
        alias="cors_origins",
    )


class RateLimitConfig(BaseModel):
    review: str = Field("120/minute", alias="review")


class CacheConfig(BaseModel):
    settings_ttl_seconds: int = Field(300, alias="settings_ttl_seconds")


class SchedulerDefaults(BaseModel):
    """Settings handed to a user the first time their settings are read."""

    new_cards_per_day: int = Field(5, alias="new_cards_per_day")
    max_reviews_per_day: int = Field(10, alias="max_reviews_per_day")
    request_retention: float = Field(0.9, alias="request_retention")
    maximum_interval: int = Field(730, alias="maximum_interval")
    enable_fuzz: bool = Field(False, alias="enable_fuzz")
    enable_short_term: bool = Field(True, alias="enable_short_term")


class AppConfig(BaseModel):
    logging: LoggingConfig = LoggingConfig()
    database: DatabaseConfig = DatabaseConfig()
    security: SecurityConfig = SecurityConfig()
    rate_limit: RateLimitConfig = RateLimitConfig()
    cache: CacheConfig = CacheConfig()
    scheduler: SchedulerDefaults = SchedulerDefaults()


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as file:
        data = yaml.safe_load(file) or {}
    return data


@lru_cache
def get_config() -> AppConfig:
    candidates = [
        Path(os.getenv("APP_CONFIG_PATH", "")),
        Path("config/config.yaml"),
        Path("backend/config/config.yaml"),
    ]

    config_path = None
    for path in candidates:
        if path and path.exists() and path.is_file():
            config_path = path
            break

    if not config_path:
        if Path("config/config.example.yaml").exists():
            config_path = Path("config/config.example.yaml")
        elif Path("backend/config/config.example.yaml").exists():
            config_path = Path("backend/config/config.example.yaml")
        else:
            raise FileNotFoundError("Config file not found in config/config.yaml or backend/config/config.yaml")

    raw = _load_yaml(config_path)
    return AppConfig(**raw)
