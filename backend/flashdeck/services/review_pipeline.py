"""Review submission: fetch, validate, check quota, update memory, persist with a log row."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from ..core.errors import Forbidden, NotFound, PersistenceFailure
from ..core.timeutil import as_naive_utc, utcnow
from ..models.card import Card
from ..models.deck import Deck
from ..models.review_log import ReviewLog
from . import memory_model
from .quota import Quota, QuotaTracker
from .settings_store import SettingsStore

logger = logging.getLogger(__name__)

DAILY_LIMIT_MESSAGE = "You've reached your daily review limit for this deck. Great work!"


@dataclass
class ReviewOutcome:
    card: Card | None
    quota: Quota
    daily_limit_reached: bool = False


class ReviewPipeline:
    def __init__(
        self,
        settings: SettingsStore,
        quota_tracker: QuotaTracker | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings
        self.quota_tracker = quota_tracker or QuotaTracker()
        self.clock = clock

    def submit(
        self,
        session: Session,
        user_id: str,
        card_id: str,
        rating: object,
        reviewed_at: datetime | None = None,
    ) -> ReviewOutcome:
        # Fetched
        card = session.get(Card, card_id)
        if card is None:
            raise NotFound("Card not found")
        if card.user_id != user_id:
            raise Forbidden("Card not found")
        logger.debug("Review %s: fetched", card_id)

        # Validated
        grade = memory_model.coerce_rating(rating)
        prior = memory_model.MemoryState.from_card(card)
        memory_model.validate_prior(prior)
        now = as_naive_utc(reviewed_at) if reviewed_at else self.clock()
        logger.debug("Review %s: validated rating %d", card_id, grade)

        deck = session.get(Deck, card.deck_id)
        if deck is None:
            raise NotFound("Card not found")
        cached = self.settings.load(session, user_id)
        # Quota read and the write below are separate statements; concurrent
        # submissions may overshoot the limit by the number of racing requests.
        quota = self.quota_tracker.remaining(session, user_id, deck, cached.limits, now)
        if quota.remaining_for(prior.state) == 0:
            logger.info("Daily limit reached for user %s on deck %s", user_id, deck.id)
            return ReviewOutcome(card=None, quota=quota, daily_limit_reached=True)

        # Updated
        updated = memory_model.update(prior, grade, cached.params, now)
        logger.debug("Review %s: %s -> %s, due %s", card_id, prior.state.name, updated.state.name, updated.due)

        # Logged: card and log row commit together or not at all
        log = ReviewLog(
            card_id=card.id,
            user_id=user_id,
            rating=int(grade),
            state=prior.state,
            due=prior.due,
            stability=prior.stability,
            difficulty=prior.difficulty,
            elapsed_days=updated.elapsed_days,
            last_elapsed_days=prior.elapsed_days,
            scheduled_days=prior.scheduled_days,
            review=now,
        )
        updated.apply_to(card)
        card.updated_at = utcnow()
        session.add(card)
        session.add(log)
        try:
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Review %s: write failed, rolled back", card_id)
            raise PersistenceFailure() from exc
        session.refresh(card)
        logger.debug("Review %s: logged", card_id)
        return ReviewOutcome(card=card, quota=quota)
