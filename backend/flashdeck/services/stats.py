"""Deck statistics for many decks at once.

Two grouped queries cover any number of decks: one over cards, one over
review logs. The numbers must match what `count_deck_cards` and
`QuotaTracker.remaining` report for each deck on its own.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import and_, case, func
from sqlmodel import Session, select

from ..models.card import Card, State
from ..models.deck import Deck
from ..models.review_log import ReviewLog
from ..models.settings import LearningLimits
from .quota import QUOTA_WINDOW, Quota, scaled_limit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeckStats:
    deck_id: str
    total: int
    new: int
    due: int
    new_seen_24h: int
    review_seen_24h: int
    quota: Quota

    @property
    def review_ready(self) -> int:
        return self.new + self.due

    @property
    def remaining_reviews(self) -> int:
        """Cards that can still be reviewed today: availability capped by quota, per bucket."""
        return min(self.new, self.quota.new_remaining) + min(self.due, self.quota.review_remaining)


def _count_if(condition):
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


def batch_stats(
    session: Session, user_id: str, decks: Sequence[Deck], as_of: datetime, limits: LearningLimits
) -> dict[str, DeckStats]:
    if not decks:
        return {}
    deck_ids = [deck.id for deck in decks]

    card_rows = session.exec(
        select(
            Card.deck_id,
            func.count(Card.id),
            _count_if(Card.state == State.NEW),
            _count_if(and_(Card.state != State.NEW, Card.due <= as_of)),
        )
        .where(Card.user_id == user_id, Card.deck_id.in_(deck_ids))
        .group_by(Card.deck_id)
    ).all()
    cards = {deck_id: (int(total), int(new), int(due)) for deck_id, total, new, due in card_rows}

    log_rows = session.exec(
        select(
            Card.deck_id,
            _count_if(ReviewLog.state == State.NEW),
            _count_if(ReviewLog.state != State.NEW),
        )
        .select_from(ReviewLog)
        .join(Card, Card.id == ReviewLog.card_id)
        .where(
            ReviewLog.user_id == user_id,
            ReviewLog.review >= as_of - QUOTA_WINDOW,
            Card.deck_id.in_(deck_ids),
        )
        .group_by(Card.deck_id)
    ).all()
    seen = {deck_id: (int(new), int(review)) for deck_id, new, review in log_rows}

    result: dict[str, DeckStats] = {}
    for deck in decks:
        total, new, due = cards.get(deck.id, (0, 0, 0))
        new_seen, review_seen = seen.get(deck.id, (0, 0))
        quota = Quota(
            new_limit=scaled_limit(limits.new_cards_per_day, deck.daily_scaler),
            review_limit=scaled_limit(limits.max_reviews_per_day, deck.daily_scaler),
            new_seen=new_seen,
            review_seen=review_seen,
        )
        result[deck.id] = DeckStats(
            deck_id=deck.id,
            total=total,
            new=new,
            due=due,
            new_seen_24h=new_seen,
            review_seen_24h=review_seen,
            quota=quota,
        )
    logger.debug("Computed stats for %d decks of user %s", len(result), user_id)
    return result
