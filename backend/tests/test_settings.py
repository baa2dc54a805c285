import pytest

from flashdeck.core.config import SchedulerDefaults
from flashdeck.core.errors import ValidationError
from flashdeck.models.settings import LearningLimits, SchedulerParameters, UserSettings
from flashdeck.services.param_cache import ParametersCache
from flashdeck.services.settings_store import SettingsStore


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_cache_entries_expire_after_ttl():
    clock = FakeClock()
    cache = ParametersCache(ttl_seconds=60, clock=clock)
    cache.put("user-1", SchedulerParameters(), LearningLimits())

    clock.now += 59
    assert cache.get("user-1") is not None
    clock.now += 1
    assert cache.get("user-1") is None
    assert len(cache) == 0


def test_put_drops_entries_that_have_expired():
    clock = FakeClock()
    cache = ParametersCache(ttl_seconds=60, clock=clock)
    cache.put("user-1", SchedulerParameters(), LearningLimits())

    clock.now += 61
    cache.put("user-2", SchedulerParameters(), LearningLimits())

    assert len(cache) == 1
    assert cache.get("user-2") is not None


def test_cache_invalidate_and_clear():
    cache = ParametersCache()
    cache.put("user-1", SchedulerParameters(), LearningLimits())
    cache.put("user-2", SchedulerParameters(), LearningLimits())

    cache.invalidate("user-1")
    assert cache.get("user-1") is None
    assert cache.get("user-2") is not None
    cache.clear()
    assert len(cache) == 0


def test_first_read_creates_defaults(session):
    store = SettingsStore(ParametersCache(), SchedulerDefaults(new_cards_per_day=7))

    row = store.get_settings(session, "user-1")

    assert row.settings["learning"] == {"newCardsPerDay": 7, "maxReviewsPerDay": 10}
    assert row.settings["fsrsParams"]["maximumInterval"] == 730
    assert store.get_settings(session, "user-1").id == row.id


def test_load_is_served_from_cache(session):
    store = SettingsStore(ParametersCache())

    first = store.load(session, "user-1")
    row = store.get_settings(session, "user-1")
    row.settings = {"learning": {"newCardsPerDay": 1}}
    session.add(row)
    session.commit()

    assert store.load(session, "user-1") is first


def test_update_invalidates_cache_synchronously(session):
    store = SettingsStore(ParametersCache())
    store.load(session, "user-1")

    store.update_settings(session, "user-1", {"learning": {"newCardsPerDay": 12}, "theme": "dark"})
    loaded = store.load(session, "user-1")

    assert loaded.limits.new_cards_per_day == 12
    assert loaded.limits.max_reviews_per_day == 10
    assert store.parse(store.get_settings(session, "user-1")).theme == "dark"


def test_partial_stored_document_is_completed_with_defaults(session):
    store = SettingsStore(ParametersCache())
    session.add(UserSettings(user_id="user-1", settings={"fsrsParams": {"requestRetention": 0.85}}))
    session.commit()

    loaded = store.load(session, "user-1")

    assert loaded.params.request_retention == 0.85
    assert loaded.params.maximum_interval == 730
    assert loaded.limits.new_cards_per_day == 5


@pytest.mark.parametrize(
    "patch",
    [
        {"fsrsParams": {"requestRetention": 1.5}},
        {"fsrsParams": {"w": [1.0, 2.0]}},
        {"learning": {"maxReviewsPerDay": -1}},
    ],
)
def test_invalid_patch_is_rejected_and_not_stored(session, patch):
    store = SettingsStore(ParametersCache())

    with pytest.raises(ValidationError):
        store.update_settings(session, "user-1", patch)

    assert store.load(session, "user-1").params == store.default_document().fsrs_params


def test_snake_case_patch_is_applied(session):
    store = SettingsStore(ParametersCache())

    row = store.update_settings(session, "user-1", {"learning": {"new_cards_per_day": 1}, "show_answer_timer": True})

    assert row.settings["learning"] == {"newCardsPerDay": 1, "maxReviewsPerDay": 10}
    assert "new_cards_per_day" not in row.settings["learning"]
    assert store.load(session, "user-1").limits.new_cards_per_day == 1
    assert store.parse(row).show_answer_timer is True


def test_snake_case_stored_document_is_read(session):
    store = SettingsStore(ParametersCache())
    session.add(UserSettings(user_id="user-1", settings={"fsrs_params": {"enable_short_term": False}}))
    session.commit()

    assert store.load(session, "user-1").params.enable_short_term is False


@pytest.mark.parametrize(
    "patch",
    [
        {"learning": {"newCardPerDay": 1}},
        {"fsrsParams": {"retention": 0.8}},
        {"colour": "blue"},
    ],
)
def test_unknown_setting_is_rejected(session, patch):
    store = SettingsStore(ParametersCache())

    with pytest.raises(ValidationError, match="Extra inputs are not permitted"):
        store.update_settings(session, "user-1", patch)

    assert store.load(session, "user-1").limits == store.default_document().learning
