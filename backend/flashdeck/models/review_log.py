from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Column, Integer
from sqlmodel import Field, SQLModel

from ..core.timeutil import utcnow
from .card import State
from .deck import CamelModel


class ReviewLog(SQLModel, table=True):
    """Immutable review history; scheduling fields are the card's values before the review."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True)
    card_id: str = Field(foreign_key="card.id", index=True)
    user_id: str = Field(index=True)

    rating: int
    state: State = Field(sa_column=Column(Integer, nullable=False, index=True))
    due: datetime | None = Field(default=None)
    stability: float = Field(default=0.0)
    difficulty: float = Field(default=0.0)
    elapsed_days: int = Field(default=0)
    last_elapsed_days: int = Field(default=0)
    scheduled_days: int = Field(default=0)
    review: datetime = Field(index=True)

    created_at: datetime = Field(default_factory=utcnow)


class ReviewLogRead(CamelModel):
    id: str
    card_id: str
    user_id: str
    rating: int
    state: State
    due: datetime | None
    stability: float
    difficulty: float
    elapsed_days: int
    last_elapsed_days: int
    scheduled_days: int
    review: datetime
