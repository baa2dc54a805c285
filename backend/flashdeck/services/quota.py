"""Daily quota accounting over the trailing 24-hour review window."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import case, func
from sqlmodel import Session, select

from ..models.card import Card, State
from ..models.deck import CamelModel, Deck
from ..models.review_log import ReviewLog
from ..models.settings import LearningLimits

QUOTA_WINDOW = timedelta(hours=24)


class DailyProgress(CamelModel):
    new_cards_seen: int
    new_cards_limit: int
    review_cards_seen: int
    review_cards_limit: int
    total_remaining: int


def scaled_limit(per_day: int, daily_scaler: float) -> int:
    # The epsilon absorbs float noise such as 10 * 0.7 == 7.000000000000001
    return max(0, math.floor(per_day * daily_scaler + 1e-9))


@dataclass(frozen=True)
class Quota:
    new_limit: int
    review_limit: int
    new_seen: int
    review_seen: int

    @property
    def new_remaining(self) -> int:
        return max(0, self.new_limit - self.new_seen)

    @property
    def review_remaining(self) -> int:
        return max(0, self.review_limit - self.review_seen)

    @property
    def total_remaining(self) -> int:
        return self.new_remaining + self.review_remaining

    @property
    def exhausted(self) -> bool:
        return self.total_remaining == 0

    def remaining_for(self, state: State) -> int:
        return self.new_remaining if state == State.NEW else self.review_remaining

    def daily_progress(self) -> DailyProgress:
        return DailyProgress(
            new_cards_seen=self.new_seen,
            new_cards_limit=self.new_limit,
            review_cards_seen=self.review_seen,
            review_cards_limit=self.review_limit,
            total_remaining=self.total_remaining,
        )


def count_consumed(
    session: Session, user_id: str, as_of: datetime, deck_id: str | None = None
) -> tuple[int, int]:
    """(new, review) log rows of the user reviewed at or after `as_of` minus 24 hours."""
    is_new = ReviewLog.state == State.NEW
    statement = select(
        func.coalesce(func.sum(case((is_new, 1), else_=0)), 0),
        func.coalesce(func.sum(case((is_new, 0), else_=1)), 0),
    ).select_from(ReviewLog).where(
        ReviewLog.user_id == user_id,
        ReviewLog.review >= as_of - QUOTA_WINDOW,
    )
    if deck_id is not None:
        statement = statement.join(Card, Card.id == ReviewLog.card_id).where(Card.deck_id == deck_id)
    new_seen, review_seen = session.exec(statement).one()
    return int(new_seen), int(review_seen)


class QuotaTracker:
    """Remaining new/review allowance for a user on one deck.

    The read is not isolated from concurrent review submissions: two
    reviews racing on the same deck can both see the last free slot.
    """

    def remaining(self, session: Session, user_id: str, deck: Deck, limits: LearningLimits, as_of: datetime) -> Quota:
        new_seen, review_seen = count_consumed(session, user_id, as_of, deck_id=deck.id)
        return Quota(
            new_limit=scaled_limit(limits.new_cards_per_day, deck.daily_scaler),
            review_limit=scaled_limit(limits.max_reviews_per_day, deck.daily_scaler),
            new_seen=new_seen,
            review_seen=review_seen,
        )
