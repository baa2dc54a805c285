"""Pick the next cards a user may review in a deck."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func
from sqlmodel import Session, select

from ..core.errors import ValidationError
from ..models.card import Card, Rating, ReviewMetrics, State
from ..models.deck import Deck
from ..models.settings import LearningLimits, SchedulerParameters
from . import memory_model
from .quota import Quota, QuotaTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeckCounts:
    total: int
    new: int
    due: int


@dataclass
class Candidate:
    card: Card
    metrics: ReviewMetrics


@dataclass
class Candidates:
    cards: list[Candidate]
    quota: Quota
    total_cards: int


@dataclass
class AllCaughtUp:
    quota: Quota
    total_cards: int
    # True when reviewable cards exist but today's quota does not allow any of them
    daily_limit_reached: bool = False


@dataclass
class EmptyDeck:
    quota: Quota


SelectionResult = Candidates | AllCaughtUp | EmptyDeck


def _deck_cards(user_id: str, deck_id: str):
    return (Card.user_id == user_id, Card.deck_id == deck_id)


def _due_filter(as_of: datetime):
    return (Card.state != State.NEW, Card.due <= as_of)


def count_deck_cards(session: Session, user_id: str, deck_id: str, as_of: datetime) -> DeckCounts:
    """Single-deck card counts; the batch aggregator must agree with this for every deck."""
    total = session.exec(select(func.count()).select_from(Card).where(*_deck_cards(user_id, deck_id))).one()
    new = session.exec(
        select(func.count()).select_from(Card).where(*_deck_cards(user_id, deck_id), Card.state == State.NEW)
    ).one()
    due = session.exec(
        select(func.count()).select_from(Card).where(*_deck_cards(user_id, deck_id), *_due_filter(as_of))
    ).one()
    return DeckCounts(total=int(total), new=int(new), due=int(due))


def review_metrics(card: Card, params: SchedulerParameters, as_of: datetime) -> ReviewMetrics:
    outcomes = memory_model.preview(memory_model.MemoryState.from_card(card), params, as_of)
    return ReviewMetrics(
        again=outcomes[Rating.AGAIN].due,
        hard=outcomes[Rating.HARD].due,
        good=outcomes[Rating.GOOD].due,
        easy=outcomes[Rating.EASY].due,
    )


def _interleave(first: list[Card], second: list[Card]) -> list[Card]:
    merged: list[Card] = []
    for index in range(max(len(first), len(second))):
        if index < len(first):
            merged.append(first[index])
        if index < len(second):
            merged.append(second[index])
    return merged


class CandidateSelector:
    def __init__(self, quota_tracker: QuotaTracker | None = None, rng: random.Random | None = None) -> None:
        self.quota_tracker = quota_tracker or QuotaTracker()
        self.rng = rng or random.Random()

    def select(
        self,
        session: Session,
        deck: Deck,
        user_id: str,
        count: int,
        as_of: datetime,
        params: SchedulerParameters,
        limits: LearningLimits,
    ) -> SelectionResult:
        if count < 1:
            raise ValidationError("count must be at least 1")

        quota = self.quota_tracker.remaining(session, user_id, deck, limits, as_of)
        counts = count_deck_cards(session, user_id, deck.id, as_of)
        if counts.total == 0:
            return EmptyDeck(quota=quota)

        new_pool = counts.new if quota.new_remaining > 0 else 0
        due_pool = counts.due if quota.review_remaining > 0 else 0
        if new_pool + due_pool == 0:
            limited = counts.new + counts.due > 0
            logger.debug("Deck %s caught up for user %s (limit reached: %s)", deck.id, user_id, limited)
            return AllCaughtUp(quota=quota, total_cards=counts.total, daily_limit_reached=limited)

        if count == 1:
            picked = self._pick_one(session, user_id, deck.id, as_of, new_pool, due_pool)
            if picked is None:
                return AllCaughtUp(quota=quota, total_cards=counts.total)
            cards = [picked]
        else:
            due_cards = self._due_cards(session, user_id, deck.id, as_of, min(count, quota.review_remaining))
            new_cards = self._new_cards(session, user_id, deck.id, min(count, quota.new_remaining))
            cards = _interleave(due_cards, new_cards)[:count]

        candidates = [Candidate(card=card, metrics=review_metrics(card, params, as_of)) for card in cards]
        return Candidates(cards=candidates, quota=quota, total_cards=counts.total)

    def _pick_one(
        self, session: Session, user_id: str, deck_id: str, as_of: datetime, new_pool: int, due_pool: int
    ) -> Card | None:
        index = self.rng.randrange(new_pool + due_pool)
        if index < new_pool:
            found = self._new_cards(session, user_id, deck_id, 1, offset=index)
        else:
            found = self._due_cards(session, user_id, deck_id, as_of, 1, offset=index - new_pool)
        if not found:
            # A concurrent review moved cards out of the pool after it was counted
            found = self._new_cards(session, user_id, deck_id, 1 if new_pool else 0) or self._due_cards(
                session, user_id, deck_id, as_of, 1 if due_pool else 0
            )
        return found[0] if found else None

    def _new_cards(self, session: Session, user_id: str, deck_id: str, limit: int, offset: int = 0) -> list[Card]:
        if limit <= 0:
            return []
        statement = (
            select(Card)
            .where(*_deck_cards(user_id, deck_id), Card.state == State.NEW)
            .order_by(Card.created_at, Card.id)
            .offset(offset)
            .limit(limit)
        )
        return list(session.exec(statement).all())

    def _due_cards(
        self, session: Session, user_id: str, deck_id: str, as_of: datetime, limit: int, offset: int = 0
    ) -> list[Card]:
        if limit <= 0:
            return []
        statement = (
            select(Card)
            .where(*_deck_cards(user_id, deck_id), *_due_filter(as_of))
            .order_by(Card.due, Card.id)
            .offset(offset)
            .limit(limit)
        )
        return list(session.exec(statement).all())
