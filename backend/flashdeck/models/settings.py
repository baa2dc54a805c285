from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import Field as PydanticField, field_validator
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from ..core.timeutil import utcnow
from .deck import CamelModel

# FSRS-5 default weights
DEFAULT_WEIGHTS: tuple[float, ...] = (
    0.40255, 1.18385, 3.173, 15.69105, 7.1949,
    0.5345, 1.4604, 0.0046, 1.54575, 0.1192,
    1.01925, 1.9395, 0.11, 0.29605, 2.2698,
    0.2315, 2.9898, 0.51655, 0.6621,
)


class UserSettings(SQLModel, table=True):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True)
    user_id: str = Field(unique=True, index=True)
    # Stored in the external camelCase shape, see SettingsDocument
    settings: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class SchedulerParameters(CamelModel):
    """Per-user inputs of the memory model."""

    request_retention: float = PydanticField(0.9, gt=0, lt=1)
    maximum_interval: int = PydanticField(36500, ge=1)
    w: tuple[float, ...] = DEFAULT_WEIGHTS
    enable_fuzz: bool = False
    enable_short_term: bool = True

    model_config = {"frozen": True, "extra": "forbid"}

    @field_validator("w")
    @classmethod
    def _check_weights(cls, value: tuple[float, ...]) -> tuple[float, ...]:
        if len(value) != len(DEFAULT_WEIGHTS):
            raise ValueError(f"w must contain exactly {len(DEFAULT_WEIGHTS)} weights")
        return value


class LearningLimits(CamelModel):
    new_cards_per_day: int = PydanticField(5, ge=0)
    max_reviews_per_day: int = PydanticField(10, ge=0)

    model_config = {"frozen": True, "extra": "forbid"}


class SettingsDocument(CamelModel):
    theme: str = "light"
    show_answer_timer: bool = False
    learning: LearningLimits = LearningLimits()
    fsrs_params: SchedulerParameters = SchedulerParameters()

    model_config = {"extra": "forbid"}


class UserSettingsRead(CamelModel):
    id: str
    user_id: str
    settings: SettingsDocument
    created_at: datetime
    updated_at: datetime


class SettingsUpdate(CamelModel):
    settings: dict[str, Any]
