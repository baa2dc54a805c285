"""FSRS-5 memory model.

Pure scheduling math: given a card's prior memory state, a rating and the
user's parameters, compute the card's next memory state. Nothing here touches
the database, so the same code path serves real reviews and the "what if"
projections shown next to each rating button.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from ..core.errors import InvalidPriorState, InvalidRating
from ..core.timeutil import as_naive_utc
from ..models.card import Card, Rating, State
from ..models.settings import SchedulerParameters

DECAY = -0.5
FACTOR = 19 / 81  # chosen so that R(S) == 0.9

S_MIN = 0.01
D_MIN = 1.0
D_MAX = 10.0

# Same-day steps used while a card is in (re)learning
NEW_STEPS = {
    Rating.AGAIN: timedelta(minutes=1),
    Rating.HARD: timedelta(minutes=5),
    Rating.GOOD: timedelta(minutes=10),
}
LEARNING_STEPS = {
    Rating.AGAIN: timedelta(minutes=5),
    Rating.HARD: timedelta(minutes=10),
}

# (start, end, factor): fuzz window grows by `factor` per day of interval inside [start, end)
FUZZ_RANGES = (
    (2.5, 7.0, 0.15),
    (7.0, 20.0, 0.1),
    (20.0, math.inf, 0.05),
)


@dataclass(frozen=True)
class MemoryState:
    state: State = State.NEW
    due: datetime | None = None
    stability: float = 0.0
    difficulty: float = 0.0
    elapsed_days: int = 0
    scheduled_days: int = 0
    reps: int = 0
    lapses: int = 0
    last_review: datetime | None = None

    @classmethod
    def from_card(cls, card: Card) -> MemoryState:
        return cls(
            state=State(card.state),
            due=card.due,
            stability=card.stability,
            difficulty=card.difficulty,
            elapsed_days=card.elapsed_days,
            scheduled_days=card.scheduled_days,
            reps=card.reps,
            lapses=card.lapses,
            last_review=card.last_review,
        )

    def apply_to(self, card: Card) -> None:
        card.state = self.state
        card.due = self.due
        card.stability = self.stability
        card.difficulty = self.difficulty
        card.elapsed_days = self.elapsed_days
        card.scheduled_days = self.scheduled_days
        card.reps = self.reps
        card.lapses = self.lapses
        card.last_review = self.last_review


# ---------------------------------------------------------------------------
# Model equations
# ---------------------------------------------------------------------------


def forgetting_curve(elapsed_days: float, stability: float) -> float:
    """Probability of recall after `elapsed_days` for a memory of the given stability."""
    return (1 + FACTOR * elapsed_days / stability) ** DECAY


def _clamp_difficulty(value: float) -> float:
    return min(max(value, D_MIN), D_MAX)


def init_stability(w: tuple[float, ...], rating: Rating) -> float:
    return max(w[rating - 1], 0.1)


def init_difficulty(w: tuple[float, ...], rating: Rating) -> float:
    return w[4] - math.exp(w[5] * (rating - 1)) + 1


def next_difficulty(w: tuple[float, ...], difficulty: float, rating: Rating) -> float:
    delta = -w[6] * (rating - 3)
    # Linear damping: steps shrink as difficulty approaches the ceiling
    shifted = difficulty + delta * (D_MAX - difficulty) / 9
    # Mean reversion towards the difficulty of an "Easy" first review
    reverted = w[7] * init_difficulty(w, Rating.EASY) + (1 - w[7]) * shifted
    return _clamp_difficulty(reverted)


def recall_stability(
    w: tuple[float, ...], difficulty: float, stability: float, retrievability: float, rating: Rating
) -> float:
    hard_penalty = w[15] if rating == Rating.HARD else 1.0
    easy_bonus = w[16] if rating == Rating.EASY else 1.0
    return stability * (
        1
        + math.exp(w[8])
        * (11 - difficulty)
        * stability ** (-w[9])
        * (math.exp((1 - retrievability) * w[10]) - 1)
        * hard_penalty
        * easy_bonus
    )


def forget_stability(w: tuple[float, ...], difficulty: float, stability: float, retrievability: float) -> float:
    post_lapse = (
        w[11]
        * difficulty ** (-w[12])
        * ((stability + 1) ** w[13] - 1)
        * math.exp((1 - retrievability) * w[14])
    )
    return min(post_lapse, stability)


def short_term_stability(w: tuple[float, ...], stability: float, rating: Rating) -> float:
    return stability * math.exp(w[17] * (rating - 3 + w[18]))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def fuzz_interval(interval: int, elapsed_days: int, maximum_interval: int, seed: str) -> int:
    """Spread an interval over a window so cards learned together do not stay clustered.

    The same seed always yields the same interval. The result is never below
    two days once fuzzing applies, and never above `maximum_interval`.
    """
    if interval < 2.5:
        return interval
    delta = 1.0
    for start, end, factor in FUZZ_RANGES:
        delta += factor * max(min(interval, end) - start, 0.0)
    min_ivl = max(2, _round_half_up(interval - delta))
    max_ivl = min(_round_half_up(interval + delta), maximum_interval)
    if interval > elapsed_days:
        min_ivl = max(min_ivl, elapsed_days + 1)
    min_ivl = min(min_ivl, max_ivl)
    fuzz_factor = random.Random(seed).random()
    fuzzed = int(math.floor(fuzz_factor * (max_ivl - min_ivl + 1) + min_ivl))
    return max(1, min(fuzzed, maximum_interval))


def next_interval(params: SchedulerParameters, stability: float, elapsed_days: int, seed: str) -> int:
    """Whole days until predicted retention falls to `request_retention`."""
    raw = stability / FACTOR * (params.request_retention ** (1 / DECAY) - 1)
    interval = min(max(_round_half_up(raw), 1), params.maximum_interval)
    if params.enable_fuzz:
        interval = fuzz_interval(interval, elapsed_days, params.maximum_interval, seed)
    return interval


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def coerce_rating(rating: object) -> Rating:
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise InvalidRating()
    try:
        return Rating(rating)
    except ValueError:
        raise InvalidRating() from None


def validate_prior(prior: MemoryState) -> None:
    numeric = {
        "stability": prior.stability,
        "difficulty": prior.difficulty,
        "elapsed_days": prior.elapsed_days,
        "scheduled_days": prior.scheduled_days,
        "reps": prior.reps,
        "lapses": prior.lapses,
    }
    for name, value in numeric.items():
        if not math.isfinite(value) or value < 0:
            raise InvalidPriorState(f"Card has an invalid {name}")
    if prior.state == State.NEW and prior.due is not None:
        raise InvalidPriorState("A new card cannot have a due date")
    if prior.state != State.NEW:
        if prior.due is None:
            raise InvalidPriorState("A scheduled card must have a due date")
        if prior.stability <= 0:
            raise InvalidPriorState("A scheduled card must have a positive stability")


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


def _elapsed_days(prior: MemoryState, now: datetime) -> int:
    if prior.last_review is None:
        return 0
    seconds = (now - as_naive_utc(prior.last_review)).total_seconds()
    return max(0, int(seconds // 86400))


def _order_intervals(intervals: dict[Rating, int], maximum: int) -> tuple[int, int, int, int]:
    """Force again < hard < good < easy, then cap; capping keeps the order non-decreasing."""
    again = min(intervals[Rating.AGAIN], intervals[Rating.HARD])
    hard = max(intervals[Rating.HARD], again + 1)
    good = max(intervals[Rating.GOOD], hard + 1)
    easy = max(intervals[Rating.EASY], good + 1)
    return tuple(min(interval, maximum) for interval in (again, hard, good, easy))


def _schedule_new(prior: MemoryState, params: SchedulerParameters, now: datetime, seed: str) -> dict[Rating, MemoryState]:
    w = params.w
    base = replace(prior, reps=prior.reps + 1, elapsed_days=0, last_review=now)
    memory = {
        rating: (init_stability(w, rating), _clamp_difficulty(init_difficulty(w, rating)))
        for rating in Rating
    }
    intervals = {rating: next_interval(params, memory[rating][0], 0, seed) for rating in Rating}

    outcomes: dict[Rating, MemoryState] = {}
    if params.enable_short_term:
        for rating, step in NEW_STEPS.items():
            s, d = memory[rating]
            outcomes[rating] = replace(
                base, state=State.LEARNING, stability=s, difficulty=d, scheduled_days=0, due=now + step
            )
        s, d = memory[Rating.EASY]
        easy = intervals[Rating.EASY]
        outcomes[Rating.EASY] = replace(
            base, state=State.REVIEW, stability=s, difficulty=d, scheduled_days=easy, due=now + timedelta(days=easy)
        )
        return outcomes

    ordered = _order_intervals(intervals, params.maximum_interval)
    for rating, interval in zip(Rating, ordered):
        s, d = memory[rating]
        outcomes[rating] = replace(
            base,
            state=State.REVIEW,
            stability=s,
            difficulty=d,
            scheduled_days=interval,
            due=now + timedelta(days=interval),
        )
    return outcomes


def _next_memory(
    prior: MemoryState, params: SchedulerParameters, rating: Rating, elapsed_days: int
) -> tuple[float, float]:
    w = params.w
    stability = max(prior.stability, S_MIN)
    difficulty = _clamp_difficulty(prior.difficulty)
    learning = prior.state in (State.LEARNING, State.RELEARNING)
    if params.enable_short_term and (learning or elapsed_days < 1):
        new_s = short_term_stability(w, stability, rating)
    else:
        retrievability = forgetting_curve(elapsed_days, stability)
        if rating == Rating.AGAIN:
            new_s = forget_stability(w, difficulty, stability, retrievability)
        else:
            new_s = recall_stability(w, difficulty, stability, retrievability, rating)
    return max(new_s, S_MIN), next_difficulty(w, difficulty, rating)


def _schedule_existing(
    prior: MemoryState, params: SchedulerParameters, now: datetime, seed: str
) -> dict[Rating, MemoryState]:
    elapsed = _elapsed_days(prior, now)
    base = replace(prior, reps=prior.reps + 1, elapsed_days=elapsed, last_review=now)
    memory = {rating: _next_memory(prior, params, rating, elapsed) for rating in Rating}
    intervals = {rating: next_interval(params, memory[rating][0], elapsed, seed) for rating in Rating}

    if prior.state == State.REVIEW:
        failed_state = State.RELEARNING
        lapses = prior.lapses + 1
    else:
        failed_state = prior.state
        lapses = prior.lapses

    outcomes: dict[Rating, MemoryState] = {}
    if params.enable_short_term:
        if prior.state == State.REVIEW:
            # Relearning starts with a short step; Hard/Good/Easy stay in Review
            s, d = memory[Rating.AGAIN]
            outcomes[Rating.AGAIN] = replace(
                base,
                state=failed_state,
                lapses=lapses,
                stability=s,
                difficulty=d,
                scheduled_days=0,
                due=now + LEARNING_STEPS[Rating.AGAIN],
            )
            hard = min(intervals[Rating.HARD], intervals[Rating.GOOD])
            good = min(max(intervals[Rating.GOOD], hard + 1), params.maximum_interval)
            easy = min(max(intervals[Rating.EASY], good + 1), params.maximum_interval)
            graduated = {Rating.HARD: hard, Rating.GOOD: good, Rating.EASY: easy}
        else:
            for rating, step in LEARNING_STEPS.items():
                s, d = memory[rating]
                outcomes[rating] = replace(
                    base, state=prior.state, stability=s, difficulty=d, scheduled_days=0, due=now + step
                )
            good = intervals[Rating.GOOD]
            easy = min(max(intervals[Rating.EASY], good + 1), params.maximum_interval)
            graduated = {Rating.GOOD: good, Rating.EASY: easy}
        for rating, interval in graduated.items():
            s, d = memory[rating]
            outcomes[rating] = replace(
                base,
                state=State.REVIEW,
                stability=s,
                difficulty=d,
                scheduled_days=interval,
                due=now + timedelta(days=interval),
            )
        return outcomes

    ordered = _order_intervals(intervals, params.maximum_interval)
    for rating, interval in zip(Rating, ordered):
        s, d = memory[rating]
        failed = rating == Rating.AGAIN
        outcomes[rating] = replace(
            base,
            state=failed_state if failed else State.REVIEW,
            lapses=lapses if failed else prior.lapses,
            stability=s,
            difficulty=d,
            scheduled_days=interval,
            due=now + timedelta(days=interval),
        )
    return outcomes


def update(prior: MemoryState, rating: object, params: SchedulerParameters, now: datetime) -> MemoryState:
    """Return the card's memory state after a review with `rating` at `now`.

    Raises InvalidRating or InvalidPriorState before computing anything.
    """
    grade = coerce_rating(rating)
    validate_prior(prior)
    now = as_naive_utc(now)
    # Seeded from the pre-review state so a preview and the real review agree
    seed = f"{now.isoformat()}_{prior.reps + 1}_{prior.difficulty * prior.stability}"
    if prior.state == State.NEW:
        outcomes = _schedule_new(prior, params, now, seed)
    else:
        outcomes = _schedule_existing(prior, params, now, seed)
    return outcomes[grade]


def preview(prior: MemoryState, params: SchedulerParameters, now: datetime) -> dict[Rating, MemoryState]:
    """Outcome of every rating, computed speculatively without persisting anything."""
    return {rating: update(prior, rating, params, now) for rating in Rating}
