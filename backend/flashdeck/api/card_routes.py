from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlmodel import Session

from ..core.config import get_config
from ..core.db import get_session
from ..models.card import CardRead, CardUpdate, ReviewSubmission
from ..models.review_log import ReviewLogRead
from ..services.card_service import CardService
from ..services.review_pipeline import DAILY_LIMIT_MESSAGE, ReviewPipeline
from .deps import get_card_service, get_current_user_id, get_review_pipeline


def _card(card) -> dict[str, Any]:
    return CardRead.model_validate(card).model_dump(by_alias=True, mode="json")


def create_card_router() -> APIRouter:
    router = APIRouter(prefix="/api/cards", tags=["cards"])
    cfg = get_config()
    limiter = Limiter(key_func=get_remote_address)

    @router.get("")
    def list_cards(
        limit: int = 50,
        offset: int = 0,
        user_id: str = Depends(get_current_user_id),
        session: Session = Depends(get_session),
        cards: CardService = Depends(get_card_service),
    ) -> dict[str, Any]:
        rows, total = cards.list_cards(session, user_id, limit=limit, offset=offset)
        return {
            "cards": [_card(card) for card in rows],
            "total": total,
            "limit": limit,
            "offset": offset,
            "hasMore": offset + len(rows) < total,
        }

    @router.get("/search")
    def search_cards(
        q: str = "",
        deck_id: str | None = Query(None, alias="deckId"),
        limit: int = 50,
        user_id: str = Depends(get_current_user_id),
        session: Session = Depends(get_session),
        cards: CardService = Depends(get_card_service),
    ) -> dict[str, Any]:
        rows = cards.search_cards(session, user_id, q, deck_id=deck_id, limit=limit)
        return {"cards": [_card(card) for card in rows], "query": q}

    @router.get("/{card_id}")
    def get_card(
        card_id: str,
        user_id: str = Depends(get_current_user_id),
        session: Session = Depends(get_session),
        cards: CardService = Depends(get_card_service),
    ) -> dict[str, Any]:
        return _card(cards.get_card(session, user_id, card_id))

    @router.put("/{card_id}")
    def update_card(
        card_id: str,
        payload: CardUpdate,
        user_id: str = Depends(get_current_user_id),
        session: Session = Depends(get_session),
        cards: CardService = Depends(get_card_service),
    ) -> dict[str, Any]:
        return _card(cards.update_card(session, user_id, card_id, payload))

    @router.delete("/{card_id}")
    def delete_card(
        card_id: str,
        user_id: str = Depends(get_current_user_id),
        session: Session = Depends(get_session),
        cards: CardService = Depends(get_card_service),
    ) -> dict[str, str]:
        cards.delete_card(session, user_id, card_id)
        return {"status": "deleted"}

    @router.get("/{card_id}/logs")
    def card_logs(
        card_id: str,
        user_id: str = Depends(get_current_user_id),
        session: Session = Depends(get_session),
        cards: CardService = Depends(get_card_service),
    ) -> list[dict[str, Any]]:
        logs = cards.card_logs(session, user_id, card_id)
        return [ReviewLogRead.model_validate(log).model_dump(by_alias=True, mode="json") for log in logs]

    @router.post("/{card_id}/review")
    @limiter.limit(cfg.rate_limit.review)
    def review_card(
        request: Request,
        card_id: str,
        payload: ReviewSubmission,
        user_id: str = Depends(get_current_user_id),
        session: Session = Depends(get_session),
        pipeline: ReviewPipeline = Depends(get_review_pipeline),
    ) -> dict[str, Any]:
        outcome = pipeline.submit(session, user_id, card_id, payload.rating, payload.reviewed_at)
        if outcome.daily_limit_reached:
            return {
                "dailyLimitReached": True,
                "message": DAILY_LIMIT_MESSAGE,
                "dailyProgress": outcome.quota.daily_progress().model_dump(by_alias=True, mode="json"),
            }
        return {"card": _card(outcome.card)}

    return router
