from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any
from enum import IntEnum

from pydantic import Field as PydanticField
from sqlalchemy import Column, Integer
from sqlmodel import Field, SQLModel

from ..core.timeutil import utcnow
from .deck import CamelModel


class State(IntEnum):
    NEW = 0
    LEARNING = 1
    REVIEW = 2
    RELEARNING = 3


class Rating(IntEnum):
    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4


class Card(SQLModel, table=True):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True)
    user_id: str = Field(index=True)
    deck_id: str = Field(foreign_key="deck.id", index=True)

    front: str
    back: str

    # Scheduling fields; only the review pipeline writes these
    state: State = Field(default=State.NEW, sa_column=Column(Integer, nullable=False, index=True))
    due: datetime | None = Field(default=None, index=True)  # None iff state == NEW
    stability: float = Field(default=0.0)
    difficulty: float = Field(default=0.0)
    elapsed_days: int = Field(default=0)
    scheduled_days: int = Field(default=0)
    reps: int = Field(default=0)
    lapses: int = Field(default=0)
    last_review: datetime | None = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)


class CardCreate(CamelModel):
    front: str = PydanticField(min_length=1)
    back: str = PydanticField(min_length=1)


class CardUpdate(CamelModel):
    front: str | None = PydanticField(None, min_length=1)
    back: str | None = PydanticField(None, min_length=1)


class CardRead(CamelModel):
    id: str
    user_id: str
    deck_id: str
    front: str
    back: str
    state: State
    due: datetime | None
    stability: float
    difficulty: float
    elapsed_days: int
    scheduled_days: int
    reps: int
    lapses: int
    last_review: datetime | None
    created_at: datetime
    updated_at: datetime


class ReviewSubmission(CamelModel):
    # Checked by the pipeline so that any bad value maps to InvalidRating
    rating: Any = None
    reviewed_at: datetime | None = None


class ReviewMetrics(CamelModel):
    """Projected due date for each possible rating."""

    again: datetime
    hard: datetime
    good: datetime
    easy: datetime
