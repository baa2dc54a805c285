from functools import lru_cache

from fastapi import Header, HTTPException

from ..core.config import get_config
from ..services.card_service import CardService
from ..services.deck_service import DeckService
from ..services.param_cache import ParametersCache
from ..services.review_pipeline import ReviewPipeline
from ..services.selector import CandidateSelector
from ..services.settings_store import SettingsStore


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Requester identity, set by the authentication proxy in front of the API."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return user_id


@lru_cache
def get_parameters_cache() -> ParametersCache:
    return ParametersCache(ttl_seconds=get_config().cache.settings_ttl_seconds)


@lru_cache
def get_settings_store() -> SettingsStore:
    return SettingsStore(get_parameters_cache(), defaults=get_config().scheduler)


@lru_cache
def get_selector() -> CandidateSelector:
    return CandidateSelector()


@lru_cache
def get_review_pipeline() -> ReviewPipeline:
    return ReviewPipeline(get_settings_store())


@lru_cache
def get_deck_service() -> DeckService:
    return DeckService()


@lru_cache
def get_card_service() -> CardService:
    return CardService()
