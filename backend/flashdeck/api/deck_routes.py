"""Deck endpoints: CRUD, cards of a deck, and the next cards to review."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends
from sqlmodel import Session

from ..core.db import get_session
from ..core.timeutil import utcnow
from ..models.card import CardCreate, CardRead
from ..models.deck import Deck, DeckCreate, DeckRead, DeckUpdate
from ..services.card_service import CardService
from ..services.deck_service import DeckService
from ..services.review_pipeline import DAILY_LIMIT_MESSAGE
from ..services.selector import AllCaughtUp, CandidateSelector, EmptyDeck
from ..services.settings_store import SettingsStore
from ..services.stats import DeckStats, batch_stats
from .deps import (
    get_card_service,
    get_current_user_id,
    get_deck_service,
    get_selector,
    get_settings_store,
)

logger = logging.getLogger(__name__)

CAUGHT_UP_MESSAGE = "You're all caught up! No cards are due for review right now."
EMPTY_DECK_MESSAGE = "This deck has no cards yet. Add some cards to start reviewing."


def _dump(model) -> dict[str, Any]:
    return model.model_dump(by_alias=True, mode="json")


def _deck_payload(deck: Deck, stats: DeckStats | None = None) -> dict[str, Any]:
    read = DeckRead.model_validate(deck)
    if stats is not None:
        read.total_cards = stats.total
        read.new_cards = stats.new
        read.due_cards = stats.due
        read.review_count = stats.review_ready
        read.remaining_reviews = stats.remaining_reviews
    return _dump(read)


def _card_page(cards, total: int, limit: int, offset: int) -> dict[str, Any]:
    return {
        "cards": [_dump(CardRead.model_validate(card)) for card in cards],
        "total": total,
        "limit": limit,
        "offset": offset,
        "hasMore": offset + len(cards) < total,
    }


def create_deck_router() -> APIRouter:
    router = APIRouter(prefix="/api/decks", tags=["decks"])

    def _with_stats(session: Session, user_id: str, decks: list[Deck], store: SettingsStore) -> list[dict[str, Any]]:
        limits = store.load(session, user_id).limits
        stats = batch_stats(session, user_id, decks, utcnow(), limits)
        return [_deck_payload(deck, stats.get(deck.id)) for deck in decks]

    @router.get("")
    def list_decks(
        user_id: str = Depends(get_current_user_id),
        session: Session = Depends(get_session),
        decks: DeckService = Depends(get_deck_service),
        store: SettingsStore = Depends(get_settings_store),
    ) -> list[dict[str, Any]]:
        return _with_stats(session, user_id, decks.list_decks(session, user_id), store)

    @router.post("", status_code=201)
    def create_deck(
        payload: DeckCreate,
        user_id: str = Depends(get_current_user_id),
        session: Session = Depends(get_session),
        decks: DeckService = Depends(get_deck_service),
    ) -> dict[str, Any]:
        return _deck_payload(decks.create_deck(session, user_id, payload))

    @router.get("/slug/{slug}")
    def get_deck_by_slug(
        slug: str,
        user_id: str = Depends(get_current_user_id),
        session: Session = Depends(get_session),
        decks: DeckService = Depends(get_deck_service),
        store: SettingsStore = Depends(get_settings_store),
    ) -> dict[str, Any]:
        deck = decks.get_deck_by_slug(session, user_id, slug)
        return _with_stats(session, user_id, [deck], store)[0]

    @router.get("/{deck_id}")
    def get_deck(
        deck_id: str,
        user_id: str = Depends(get_current_user_id),
        session: Session = Depends(get_session),
        decks: DeckService = Depends(get_deck_service),
        store: SettingsStore = Depends(get_settings_store),
    ) -> dict[str, Any]:
        deck = decks.get_deck(session, user_id, deck_id)
        return _with_stats(session, user_id, [deck], store)[0]

    @router.put("/{deck_id}")
    def update_deck(
        deck_id: str,
        payload: DeckUpdate,
        user_id: str = Depends(get_current_user_id),
        session: Session = Depends(get_session),
        decks: DeckService = Depends(get_deck_service),
    ) -> dict[str, Any]:
        return _deck_payload(decks.update_deck(session, user_id, deck_id, payload))

    @router.delete("/{deck_id}")
    def delete_deck(
        deck_id: str,
        user_id: str = Depends(get_current_user_id),
        session: Session = Depends(get_session),
        decks: DeckService = Depends(get_deck_service),
    ) -> dict[str, str]:
        decks.delete_deck(session, user_id, deck_id)
        return {"status": "deleted"}

    @router.get("/{deck_id}/cards")
    def list_deck_cards(
        deck_id: str,
        limit: int = 50,
        offset: int = 0,
        user_id: str = Depends(get_current_user_id),
        session: Session = Depends(get_session),
        decks: DeckService = Depends(get_deck_service),
        cards: CardService = Depends(get_card_service),
    ) -> dict[str, Any]:
        deck = decks.get_deck(session, user_id, deck_id)
        rows, total = cards.list_cards(session, user_id, deck_id=deck.id, limit=limit, offset=offset)
        return _card_page(rows, total, limit, offset)

    @router.post("/{deck_id}/cards", status_code=201)
    def create_card(
        deck_id: str,
        payload: CardCreate,
        user_id: str = Depends(get_current_user_id),
        session: Session = Depends(get_session),
        cards: CardService = Depends(get_card_service),
    ) -> dict[str, Any]:
        return _dump(CardRead.model_validate(cards.create_card(session, user_id, deck_id, payload)))

    @router.get("/{deck_ref}/review")
    def next_review_cards(
        deck_ref: str,
        count: int = 1,
        user_id: str = Depends(get_current_user_id),
        session: Session = Depends(get_session),
        decks: DeckService = Depends(get_deck_service),
        selector: CandidateSelector = Depends(get_selector),
        store: SettingsStore = Depends(get_settings_store),
    ) -> dict[str, Any]:
        deck = decks.resolve(session, user_id, deck_ref)
        cached = store.load(session, user_id)
        result = selector.select(session, deck, user_id, count, utcnow(), cached.params, cached.limits)
        body: dict[str, Any] = {
            "deck": _deck_payload(deck),
            "dailyProgress": _dump(result.quota.daily_progress()),
        }

        if isinstance(result, EmptyDeck):
            body.update(emptyDeck=True, message=EMPTY_DECK_MESSAGE)
            return body
        if isinstance(result, AllCaughtUp):
            body.update(
                allCaughtUp=True,
                totalCards=result.total_cards,
                dailyLimitReached=result.daily_limit_reached,
                message=DAILY_LIMIT_MESSAGE if result.daily_limit_reached else CAUGHT_UP_MESSAGE,
            )
            return body

        entries = [
            {"card": _dump(CardRead.model_validate(c.card)), "reviewMetrics": _dump(c.metrics)}
            for c in result.cards
        ]
        if count == 1:
            body.update(entries[0])
        else:
            body["cards"] = entries
        logger.debug("Served %d review card(s) from deck %s", len(entries), deck.id)
        return body

    return router
