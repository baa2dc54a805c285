from datetime import datetime, timedelta

import pytest

from flashdeck.models.card import State
from flashdeck.models.settings import LearningLimits
from flashdeck.services.quota import Quota, QuotaTracker, count_consumed, scaled_limit

NOW = datetime(2024, 3, 1, 12, 0, 0)
LIMITS = LearningLimits(new_cards_per_day=5, max_reviews_per_day=10)


@pytest.mark.parametrize(
    ("per_day", "scaler", "expected"),
    [(10, 1.0, 10), (10, 0.5, 5), (10, 0.7, 7), (5, 0.3, 1), (5, 0.1, 0), (10, 2.5, 25), (0, 3.0, 0)],
)
def test_scaled_limit_floors(per_day, scaler, expected):
    assert scaled_limit(per_day, scaler) == expected


def test_quota_remaining_never_negative():
    quota = Quota(new_limit=2, review_limit=3, new_seen=5, review_seen=1)

    assert quota.new_remaining == 0
    assert quota.review_remaining == 2
    assert quota.total_remaining == 2
    assert not quota.exhausted
    assert quota.remaining_for(State.NEW) == 0
    assert quota.remaining_for(State.RELEARNING) == 2


def test_daily_progress_payload_is_camel_case():
    quota = Quota(new_limit=5, review_limit=10, new_seen=1, review_seen=4)

    payload = quota.daily_progress().model_dump(by_alias=True)

    assert payload == {
        "newCardsSeen": 1,
        "newCardsLimit": 5,
        "reviewCardsSeen": 4,
        "reviewCardsLimit": 10,
        "totalRemaining": 10,
    }


def test_counts_only_logs_inside_the_window(session, make_deck, make_card, make_log):
    deck = make_deck()
    card = make_card(deck)
    make_log(card, state=State.NEW, review=NOW - timedelta(hours=2))
    make_log(card, state=State.LEARNING, review=NOW - timedelta(hours=1))
    make_log(card, state=State.REVIEW, review=NOW - timedelta(hours=24))
    make_log(card, state=State.REVIEW, review=NOW - timedelta(hours=24, seconds=1))
    make_log(card, state=State.NEW, review=NOW - timedelta(days=3))

    assert count_consumed(session, deck.user_id, NOW, deck_id=deck.id) == (1, 2)


def test_consumption_is_per_deck_and_per_user(session, make_deck, make_card, make_log):
    spanish = make_deck("Spanish")
    french = make_deck("French")
    stranger = make_deck("Spanish", user_id="user-2")
    make_log(make_card(spanish), state=State.NEW)
    make_log(make_card(french), state=State.NEW)
    make_log(make_card(french), state=State.REVIEW)
    make_log(make_card(stranger), state=State.NEW)

    tracker = QuotaTracker()
    spanish_quota = tracker.remaining(session, "user-1", spanish, LIMITS, NOW)
    french_quota = tracker.remaining(session, "user-1", french, LIMITS, NOW)

    assert (spanish_quota.new_seen, spanish_quota.review_seen) == (1, 0)
    assert (french_quota.new_seen, french_quota.review_seen) == (1, 1)
    assert count_consumed(session, "user-1", NOW) == (2, 1)


def test_remaining_applies_deck_scaler(session, make_deck, make_card, make_log):
    deck = make_deck(daily_scaler=0.5)
    card = make_card(deck)
    for _ in range(3):
        make_log(card, state=State.REVIEW)

    quota = QuotaTracker().remaining(session, deck.user_id, deck, LIMITS, NOW)

    assert quota.new_limit == 2
    assert quota.review_limit == 5
    assert quota.review_remaining == 2
    assert quota.new_remaining == 2
