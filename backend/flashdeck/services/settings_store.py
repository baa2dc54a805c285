from __future__ import annotations

import copy
import logging
from typing import Any

import pydantic
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from ..core.config import SchedulerDefaults
from ..core.errors import PersistenceFailure, ValidationError
from ..core.timeutil import utcnow
from ..models.settings import (
    LearningLimits,
    SchedulerParameters,
    SettingsDocument,
    UserSettings,
)
from .param_cache import CachedParameters, ParametersCache

logger = logging.getLogger(__name__)


def _deep_merge(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _camel_keys(document: dict[str, Any]) -> dict[str, Any]:
    """Rewrites snake_case keys to the stored camelCase shape."""
    normalised = {}
    for key, value in document.items():
        if isinstance(key, str) and "_" in key:
            key = to_camel(key)
        normalised[key] = _camel_keys(value) if isinstance(value, dict) else value
    return normalised


class SettingsStore:
    def __init__(self, cache: ParametersCache, defaults: SchedulerDefaults | None = None) -> None:
        self.cache = cache
        self.defaults = defaults or SchedulerDefaults()

    def default_document(self) -> SettingsDocument:
        d = self.defaults
        return SettingsDocument(
            learning=LearningLimits(
                new_cards_per_day=d.new_cards_per_day,
                max_reviews_per_day=d.max_reviews_per_day,
            ),
            fsrs_params=SchedulerParameters(
                request_retention=d.request_retention,
                maximum_interval=d.maximum_interval,
                enable_fuzz=d.enable_fuzz,
                enable_short_term=d.enable_short_term,
            ),
        )

    def parse(self, row: UserSettings) -> SettingsDocument:
        # Documents written by older versions may lack sections; defaults fill the gaps
        base = self.default_document().model_dump(by_alias=True, mode="json")
        return SettingsDocument.model_validate(_deep_merge(base, _camel_keys(row.settings or {})))

    def get_settings(self, session: Session, user_id: str) -> UserSettings:
        row = session.exec(select(UserSettings).where(UserSettings.user_id == user_id)).first()
        if row:
            return row
        logger.info("Creating default settings for user %s", user_id)
        row = UserSettings(
            user_id=user_id,
            settings=self.default_document().model_dump(by_alias=True, mode="json"),
        )
        session.add(row)
        try:
            session.commit()
        except IntegrityError:
            # Another request created them first
            session.rollback()
            return session.exec(select(UserSettings).where(UserSettings.user_id == user_id)).one()
        except SQLAlchemyError as exc:
            session.rollback()
            raise PersistenceFailure() from exc
        session.refresh(row)
        return row

    def update_settings(self, session: Session, user_id: str, patch: dict[str, Any]) -> UserSettings:
        row = self.get_settings(session, user_id)
        current = self.parse(row).model_dump(by_alias=True, mode="json")
        try:
            document = SettingsDocument.model_validate(_deep_merge(current, _camel_keys(patch)))
        except pydantic.ValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(part) for part in first["loc"])
            raise ValidationError(f"Invalid settings: {field}: {first['msg']}") from exc

        row.settings = document.model_dump(by_alias=True, mode="json")
        row.updated_at = utcnow()
        session.add(row)
        try:
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise PersistenceFailure() from exc
        finally:
            self.cache.invalidate(user_id)
        session.refresh(row)
        logger.info("Updated settings for user %s", user_id)
        return row

    def load(self, session: Session, user_id: str) -> CachedParameters:
        """Scheduler parameters and daily limits for a user, served from the cache when fresh."""
        cached = self.cache.get(user_id)
        if cached is not None:
            return cached
        document = self.parse(self.get_settings(session, user_id))
        return self.cache.put(user_id, document.fsrs_params, document.learning)
