from __future__ import annotations

import logging

from sqlalchemy import delete, func, or_
from sqlmodel import Session, select

from ..core.db import commit_or_raise
from ..core.errors import NotFound, ValidationError
from ..core.timeutil import utcnow
from ..models.card import Card, CardCreate, CardUpdate
from ..models.deck import Deck
from ..models.review_log import ReviewLog

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def _check_page(limit: int, offset: int) -> None:
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    if offset < 0:
        raise ValidationError("offset must not be negative")


class CardService:
    def list_cards(
        self,
        session: Session,
        user_id: str,
        deck_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Card], int]:
        _check_page(limit, offset)
        conditions = [Card.user_id == user_id]
        if deck_id is not None:
            conditions.append(Card.deck_id == deck_id)
        total = session.exec(select(func.count()).select_from(Card).where(*conditions)).one()
        statement = (
            select(Card).where(*conditions).order_by(Card.created_at.desc(), Card.id).offset(offset).limit(limit)
        )
        return list(session.exec(statement).all()), int(total)

    def search_cards(
        self,
        session: Session,
        user_id: str,
        query: str,
        deck_id: str | None = None,
        limit: int = 50,
    ) -> list[Card]:
        _check_page(limit, 0)
        term = query.strip()
        if not term:
            raise ValidationError("Search query must not be empty")
        pattern = f"%{term.lower()}%"
        statement = select(Card).where(
            Card.user_id == user_id,
            or_(func.lower(Card.front).like(pattern), func.lower(Card.back).like(pattern)),
        )
        if deck_id is not None:
            statement = statement.where(Card.deck_id == deck_id)
        statement = statement.order_by(Card.created_at.desc(), Card.id).limit(limit)
        return list(session.exec(statement).all())

    def get_card(self, session: Session, user_id: str, card_id: str) -> Card:
        card = session.get(Card, card_id)
        if card is None or card.user_id != user_id:
            raise NotFound("Card not found")
        return card

    def create_card(self, session: Session, user_id: str, deck_id: str, data: CardCreate) -> Card:
        deck = session.get(Deck, deck_id)
        if deck is None or deck.user_id != user_id:
            raise NotFound("Deck not found")
        card = Card(user_id=user_id, deck_id=deck.id, front=data.front, back=data.back)
        session.add(card)
        commit_or_raise(session)
        session.refresh(card)
        logger.info("Created card %s in deck %s", card.id, deck.id)
        return card

    def update_card(self, session: Session, user_id: str, card_id: str, data: CardUpdate) -> Card:
        # Content only: scheduling fields change through reviews
        card = self.get_card(session, user_id, card_id)
        if data.front is not None:
            card.front = data.front
        if data.back is not None:
            card.back = data.back
        card.updated_at = utcnow()
        session.add(card)
        commit_or_raise(session)
        session.refresh(card)
        return card

    def delete_card(self, session: Session, user_id: str, card_id: str) -> None:
        card = self.get_card(session, user_id, card_id)
        session.exec(delete(ReviewLog).where(ReviewLog.card_id == card.id))
        session.delete(card)
        commit_or_raise(session)
        logger.info("Deleted card %s of user %s", card_id, user_id)

    def card_logs(self, session: Session, user_id: str, card_id: str) -> list[ReviewLog]:
        card = self.get_card(session, user_id, card_id)
        statement = (
            select(ReviewLog).where(ReviewLog.card_id == card.id).order_by(ReviewLog.review.desc(), ReviewLog.id)
        )
        return list(session.exec(statement).all())
