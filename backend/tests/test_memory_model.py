from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from flashdeck.core.errors import InvalidPriorState, InvalidRating
from flashdeck.models.card import Rating, State
from flashdeck.models.settings import DEFAULT_WEIGHTS, SchedulerParameters
from flashdeck.services import memory_model
from flashdeck.services.memory_model import MemoryState

NOW = datetime(2024, 3, 1, 12, 0, 0)
PARAMS = SchedulerParameters()
LONG_TERM = SchedulerParameters(enable_short_term=False)


def review_state(days_since=10, stability=10.0, difficulty=5.0, state=State.REVIEW, lapses=0):
    last = NOW - timedelta(days=days_since)
    return MemoryState(
        state=state,
        due=last + timedelta(days=days_since),
        stability=stability,
        difficulty=difficulty,
        elapsed_days=4,
        scheduled_days=days_since,
        reps=4,
        lapses=lapses,
        last_review=last,
    )


def test_forgetting_curve_is_ninety_percent_at_stability():
    assert memory_model.forgetting_curve(7, 7) == pytest.approx(0.9)
    assert memory_model.forgetting_curve(0, 3) == pytest.approx(1.0)


@pytest.mark.parametrize("rating", list(Rating))
def test_new_card_first_review_initialises_memory(rating):
    result = memory_model.update(MemoryState(), rating, PARAMS, NOW)

    assert result.reps == 1
    assert result.lapses == 0
    assert result.last_review == NOW
    assert result.stability == pytest.approx(max(DEFAULT_WEIGHTS[rating - 1], 0.1))
    assert 1 <= result.difficulty <= 10
    assert result.due > NOW


def test_new_card_short_term_steps():
    outcomes = memory_model.preview(MemoryState(), PARAMS, NOW)

    assert outcomes[Rating.AGAIN].state == State.LEARNING
    assert outcomes[Rating.AGAIN].due == NOW + timedelta(minutes=1)
    assert outcomes[Rating.HARD].due == NOW + timedelta(minutes=5)
    assert outcomes[Rating.GOOD].due == NOW + timedelta(minutes=10)
    assert outcomes[Rating.EASY].state == State.REVIEW
    # At 90% retention the interval equals the stability
    assert outcomes[Rating.EASY].scheduled_days == round(DEFAULT_WEIGHTS[3])
    assert outcomes[Rating.EASY].due == NOW + timedelta(days=round(DEFAULT_WEIGHTS[3]))


def test_new_card_without_short_term_lands_in_review_with_day_intervals():
    outcomes = memory_model.preview(MemoryState(), LONG_TERM, NOW)

    days = [outcomes[rating].scheduled_days for rating in Rating]
    assert all(outcome.state == State.REVIEW for outcome in outcomes.values())
    assert days == sorted(days)
    assert len(set(days)) == 4
    assert days[0] >= 1


def test_again_on_review_card_relearns_and_counts_a_lapse():
    prior = review_state(lapses=2)

    result = memory_model.update(prior, Rating.AGAIN, PARAMS, NOW)

    assert result.state == State.RELEARNING
    assert result.lapses == 3
    assert result.stability <= prior.stability
    assert result.due == NOW + timedelta(minutes=5)


def test_again_on_review_card_relearns_without_short_term():
    result = memory_model.update(review_state(), Rating.AGAIN, LONG_TERM, NOW)

    assert result.state == State.RELEARNING
    assert result.lapses == 1
    assert result.scheduled_days >= 1


@pytest.mark.parametrize("rating", [Rating.HARD, Rating.GOOD, Rating.EASY])
def test_successful_review_keeps_review_state_and_grows_stability(rating):
    prior = review_state()

    result = memory_model.update(prior, rating, PARAMS, NOW)

    assert result.state == State.REVIEW
    assert result.lapses == 0
    assert result.stability > prior.stability
    assert result.elapsed_days == 10
    assert result.reps == prior.reps + 1


def test_good_review_interval_grows_past_previous_interval():
    prior = review_state(days_since=10, stability=10.0)

    result = memory_model.update(prior, Rating.GOOD, PARAMS, NOW)

    assert result.scheduled_days > 10


@pytest.mark.parametrize("state", [State.LEARNING, State.RELEARNING])
def test_learning_cards_graduate_on_good(state):
    prior = review_state(days_since=0, stability=2.0, state=state)
    prior = replace(prior, due=NOW, last_review=NOW - timedelta(minutes=10))

    outcomes = memory_model.preview(prior, PARAMS, NOW)

    assert outcomes[Rating.AGAIN].state == state
    assert outcomes[Rating.AGAIN].due == NOW + timedelta(minutes=5)
    assert outcomes[Rating.HARD].state == state
    assert outcomes[Rating.HARD].due == NOW + timedelta(minutes=10)
    assert outcomes[Rating.GOOD].state == State.REVIEW
    assert outcomes[Rating.GOOD].scheduled_days >= 1
    assert outcomes[Rating.EASY].scheduled_days > outcomes[Rating.GOOD].scheduled_days


def test_difficulty_moves_with_rating_and_stays_clamped():
    prior = review_state(difficulty=5.0)
    outcomes = memory_model.preview(prior, PARAMS, NOW)

    assert outcomes[Rating.AGAIN].difficulty > 5.0
    assert outcomes[Rating.EASY].difficulty < 5.0

    hardest = review_state(difficulty=10.0)
    assert 9.9 < memory_model.update(hardest, Rating.AGAIN, PARAMS, NOW).difficulty <= 10.0
    easiest = review_state(difficulty=1.0)
    assert memory_model.update(easiest, Rating.EASY, PARAMS, NOW).difficulty >= 1.0


def test_difficulty_step_is_damped_near_the_ceiling():
    # 9 + 2.9208 * (10 - 9) / 9, then reverted towards D0(Easy) by w7
    assert memory_model.next_difficulty(DEFAULT_WEIGHTS, 9.0, Rating.AGAIN) == pytest.approx(9.296473187311108)
    assert memory_model.next_difficulty(DEFAULT_WEIGHTS, 9.0, Rating.AGAIN) < 10.0
    assert memory_model.next_difficulty(DEFAULT_WEIGHTS, 5.0, Rating.GOOD) == pytest.approx(
        DEFAULT_WEIGHTS[7] * memory_model.init_difficulty(DEFAULT_WEIGHTS, Rating.EASY) + (1 - DEFAULT_WEIGHTS[7]) * 5.0
    )


@pytest.mark.parametrize("params", [PARAMS, LONG_TERM, SchedulerParameters(enable_fuzz=True)])
@pytest.mark.parametrize(
    "prior",
    [
        MemoryState(),
        review_state(),
        review_state(days_since=40, stability=60.0, difficulty=8.0),
        replace(review_state(days_since=0, stability=1.5, state=State.RELEARNING), due=NOW),
    ],
)
def test_preview_due_dates_are_ordered(prior, params):
    outcomes = memory_model.preview(prior, params, NOW)

    dues = [outcomes[rating].due for rating in Rating]
    assert dues == sorted(dues)
    assert all(due >= NOW for due in dues)


def test_maximum_interval_caps_every_outcome():
    params = SchedulerParameters(maximum_interval=30, enable_short_term=False)
    prior = review_state(days_since=200, stability=300.0)

    outcomes = memory_model.preview(prior, params, NOW)

    assert all(outcome.scheduled_days <= 30 for outcome in outcomes.values())


def test_fuzz_is_deterministic_and_bounded():
    seed = "2024-03-01T12:00:00_5_50.0"
    first = memory_model.fuzz_interval(40, 30, 36500, seed)

    assert memory_model.fuzz_interval(40, 30, 36500, seed) == first
    assert 2 <= first <= 36500
    assert abs(first - 40) <= 4
    assert memory_model.fuzz_interval(2, 0, 36500, seed) == 2
    assert memory_model.fuzz_interval(40, 30, 38, seed) <= 38


def test_fuzzed_update_matches_its_preview():
    params = SchedulerParameters(enable_fuzz=True)
    prior = review_state(days_since=20, stability=25.0)

    previewed = memory_model.preview(prior, params, NOW)[Rating.GOOD]

    assert memory_model.update(prior, Rating.GOOD, params, NOW) == previewed


@pytest.mark.parametrize("rating", [0, 5, -1, "3", 3.0, None, True])
def test_invalid_rating_is_rejected(rating):
    with pytest.raises(InvalidRating):
        memory_model.update(MemoryState(), rating, PARAMS, NOW)


@pytest.mark.parametrize(
    "prior",
    [
        MemoryState(due=NOW),
        replace(review_state(), due=None),
        replace(review_state(), stability=0.0),
        replace(review_state(), reps=-1),
        replace(review_state(), difficulty=float("nan")),
    ],
)
def test_inconsistent_prior_state_is_rejected(prior):
    with pytest.raises(InvalidPriorState):
        memory_model.update(prior, Rating.GOOD, PARAMS, NOW)


def test_update_is_pure():
    prior = review_state()
    snapshot = replace(prior)

    memory_model.update(prior, Rating.GOOD, PARAMS, NOW)

    assert prior == snapshot
