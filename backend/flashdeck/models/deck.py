from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field as PydanticField
from pydantic.alias_generators import to_camel
from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from ..core.timeutil import utcnow


class Deck(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_deck_user_name"),
        UniqueConstraint("user_id", "slug", name="uq_deck_user_slug"),
    )

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True)
    user_id: str = Field(index=True)
    name: str
    slug: str = Field(index=True)
    description: str | None = Field(default=None)
    # Multiplies the user's daily new/review limits for this deck
    daily_scaler: float = Field(default=1.0, gt=0)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class DeckCreate(CamelModel):
    name: str = PydanticField(min_length=1, max_length=200)
    description: str | None = None
    daily_scaler: float = PydanticField(1.0, gt=0)


class DeckUpdate(CamelModel):
    name: str | None = PydanticField(None, min_length=1, max_length=200)
    slug: str | None = PydanticField(None, min_length=1, max_length=200)
    description: str | None = None
    daily_scaler: float | None = PydanticField(None, gt=0)


class DeckRead(CamelModel):
    id: str
    user_id: str
    name: str
    slug: str
    description: str | None
    daily_scaler: float
    created_at: datetime
    updated_at: datetime

    # Filled in from the stats aggregator when listing
    total_cards: int | None = None
    new_cards: int | None = None
    due_cards: int | None = None
    review_count: int | None = None
    remaining_reviews: int | None = None
