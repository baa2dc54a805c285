from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from sqlmodel import Session

from ..core.db import get_session
from ..models.settings import SettingsUpdate, UserSettings, UserSettingsRead
from ..services.settings_store import SettingsStore
from .deps import get_current_user_id, get_settings_store


def create_settings_router() -> APIRouter:
    router = APIRouter(prefix="/api/user-settings", tags=["settings"])

    def _payload(store: SettingsStore, row: UserSettings) -> dict[str, Any]:
        read = UserSettingsRead(
            id=row.id,
            user_id=row.user_id,
            settings=store.parse(row),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
        return read.model_dump(by_alias=True, mode="json")

    @router.get("")
    def get_settings(
        user_id: str = Depends(get_current_user_id),
        session: Session = Depends(get_session),
        store: SettingsStore = Depends(get_settings_store),
    ) -> dict[str, Any]:
        return _payload(store, store.get_settings(session, user_id))

    @router.put("")
    def update_settings(
        payload: SettingsUpdate,
        user_id: str = Depends(get_current_user_id),
        session: Session = Depends(get_session),
        store: SettingsStore = Depends(get_settings_store),
    ) -> dict[str, Any]:
        return _payload(store, store.update_settings(session, user_id, payload.settings))

    return router
