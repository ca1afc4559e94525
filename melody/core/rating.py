"""ELO rating arithmetic for pairwise song comparisons.

Everything here is pure: ratings go in, ratings come out.  Persisting the
results is the job of :mod:`melody.services.ranking_service`.

Ratings are rounded to one decimal place using round-half-away-from-zero on
the shortest decimal representation of the float, so ``1516.05`` becomes
``1516.1`` and ``-0.05`` becomes ``-0.1``.  The same rule is applied when a
ledger is replayed, which keeps replayed ratings identical to stored ones.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

DEFAULT_K_FACTOR = 32.0
INITIAL_RATING = 1500.0

_ONE_DECIMAL = Decimal("0.1")

__all__ = [
    "DEFAULT_K_FACTOR",
    "INITIAL_RATING",
    "RatingUpdate",
    "ReplayStep",
    "expected_score",
    "replay",
    "round_rating",
    "update",
]


def round_rating(value: float) -> float:
    """Round ``value`` to one decimal, halves away from zero."""

    quantized = Decimal(repr(float(value))).quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP)
    return float(quantized)


def expected_score(rating: float, opponent_rating: float) -> float:
    """Probability that ``rating`` beats ``opponent_rating`` under the ELO model."""

    return 1.0 / (1.0 + 10 ** ((opponent_rating - rating) / 400.0))


@dataclass(slots=True, frozen=True)
class RatingUpdate:
    winner: float
    loser: float

    def deltas(self, winner_before: float, loser_before: float) -> tuple[float, float]:
        return (
            round_rating(self.winner - winner_before),
            round_rating(self.loser - loser_before),
        )


def update(
    winner_rating: float,
    loser_rating: float,
    k_factor: float = DEFAULT_K_FACTOR,
) -> RatingUpdate:
    """Return the post-comparison ratings for a winner and a loser.

    No clamping is applied; ratings may drift above the seed or below zero.
    """

    if k_factor <= 0:
        raise ValueError("k_factor must be positive")
    expected_winner = expected_score(winner_rating, loser_rating)
    expected_loser = 1.0 - expected_winner
    new_winner = winner_rating + k_factor * (1.0 - expected_winner)
    new_loser = loser_rating + k_factor * (0.0 - expected_loser)
    return RatingUpdate(winner=round_rating(new_winner), loser=round_rating(new_loser))


@dataclass(slots=True, frozen=True)
class ReplayStep:
    """The minimal view of a ledger entry needed to replay it."""

    winner_id: str
    loser_id: str


def replay(
    steps: Iterable[ReplayStep],
    *,
    seeds: Mapping[str, float] | None = None,
    initial_rating: float = INITIAL_RATING,
    k_factor: float = DEFAULT_K_FACTOR,
) -> dict[str, float]:
    """Re-apply :func:`update` over ``steps`` in order and return final ratings.

    Songs that never appear in ``steps`` but are present in ``seeds`` keep
    their seed rating.
    """

    ratings: dict[str, float] = dict(seeds or {})
    for step in steps:
        winner_before = ratings.get(step.winner_id, initial_rating)
        loser_before = ratings.get(step.loser_id, initial_rating)
        result = update(winner_before, loser_before, k_factor)
        ratings[step.winner_id] = result.winner
        ratings[step.loser_id] = result.loser
    return ratings
