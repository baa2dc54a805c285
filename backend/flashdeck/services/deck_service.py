from __future__ import annotations

import logging
import re

from sqlalchemy import delete
from sqlmodel import Session, select

from ..core.db import commit_or_raise
from ..core.errors import Conflict, NotFound
from ..core.timeutil import utcnow
from ..models.card import Card
from ..models.deck import Deck, DeckCreate, DeckUpdate
from ..models.review_log import ReviewLog

logger = logging.getLogger(__name__)


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "deck"


class DeckService:
    def list_decks(self, session: Session, user_id: str) -> list[Deck]:
        statement = select(Deck).where(Deck.user_id == user_id).order_by(Deck.created_at.desc(), Deck.id)
        return list(session.exec(statement).all())

    def get_deck(self, session: Session, user_id: str, deck_id: str) -> Deck:
        deck = session.get(Deck, deck_id)
        # Someone else's deck is reported exactly like a missing one
        if deck is None or deck.user_id != user_id:
            raise NotFound("Deck not found")
        return deck

    def get_deck_by_slug(self, session: Session, user_id: str, slug: str) -> Deck:
        deck = session.exec(select(Deck).where(Deck.user_id == user_id, Deck.slug == slug)).first()
        if deck is None:
            raise NotFound("Deck not found")
        return deck

    def resolve(self, session: Session, user_id: str, slug_or_id: str) -> Deck:
        deck = session.exec(select(Deck).where(Deck.user_id == user_id, Deck.slug == slug_or_id)).first()
        if deck is not None:
            return deck
        return self.get_deck(session, user_id, slug_or_id)

    def _unique_slug(self, session: Session, user_id: str, base: str) -> str:
        taken = set(session.exec(select(Deck.slug).where(Deck.user_id == user_id, Deck.slug.startswith(base))).all())
        if base not in taken:
            return base
        suffix = 2
        while f"{base}-{suffix}" in taken:
            suffix += 1
        return f"{base}-{suffix}"

    def _ensure_name_free(self, session: Session, user_id: str, name: str, exclude_id: str | None = None) -> None:
        statement = select(Deck.id).where(Deck.user_id == user_id, Deck.name == name)
        if exclude_id is not None:
            statement = statement.where(Deck.id != exclude_id)
        if session.exec(statement).first():
            raise Conflict("A deck with this name already exists")

    def create_deck(self, session: Session, user_id: str, data: DeckCreate) -> Deck:
        name = data.name.strip()
        self._ensure_name_free(session, user_id, name)
        deck = Deck(
            user_id=user_id,
            name=name,
            slug=self._unique_slug(session, user_id, slugify(name)),
            description=data.description,
            daily_scaler=data.daily_scaler,
        )
        session.add(deck)
        commit_or_raise(session)
        session.refresh(deck)
        logger.info("Created deck %s for user %s", deck.id, user_id)
        return deck

    def update_deck(self, session: Session, user_id: str, deck_id: str, data: DeckUpdate) -> Deck:
        deck = self.get_deck(session, user_id, deck_id)
        if data.name is not None:
            name = data.name.strip()
            self._ensure_name_free(session, user_id, name, exclude_id=deck.id)
            deck.name = name
        if data.slug is not None:
            slug = slugify(data.slug)
            clash = session.exec(
                select(Deck.id).where(Deck.user_id == user_id, Deck.slug == slug, Deck.id != deck.id)
            ).first()
            if clash:
                raise Conflict("A deck with this slug already exists")
            deck.slug = slug
        if data.description is not None:
            deck.description = data.description
        if data.daily_scaler is not None:
            deck.daily_scaler = data.daily_scaler
        deck.updated_at = utcnow()
        session.add(deck)
        commit_or_raise(session)
        session.refresh(deck)
        return deck

    def delete_deck(self, session: Session, user_id: str, deck_id: str) -> None:
        deck = self.get_deck(session, user_id, deck_id)
        card_ids = select(Card.id).where(Card.deck_id == deck.id)
        session.exec(delete(ReviewLog).where(ReviewLog.card_id.in_(card_ids)))
        session.exec(delete(Card).where(Card.deck_id == deck.id))
        session.delete(deck)
        commit_or_raise(session)
        logger.info("Deleted deck %s of user %s", deck_id, user_id)
