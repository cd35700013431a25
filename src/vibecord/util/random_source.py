"""
Injectable randomness for the features.

Every probabilistic decision (vibe checks, ambient message sampling, persona
draws, sampling parameters) goes through a RandomSource so tests can pin the
outcome with a seeded or scripted source.
"""

from __future__ import annotations

import random
from typing import Sequence, TypeVar

T = TypeVar("T")

DEFAULT_WEIGHT = 0.8


class RandomSource:
    """Thin wrapper around :class:`random.Random` with the helpers the bot needs."""

    def __init__(self, seed: int | None = None) -> None:
        self._rng = random.Random(seed)

    def float(self) -> float:
        """Return a float in [0.0, 1.0)."""
        return self._rng.random()

    def bool(self, weight: float) -> bool:
        """Return True with probability ``weight``.

        Weights outside [0, 1] fall back to 0.8.
        """
        if weight < 0.0 or weight > 1.0:
            weight = DEFAULT_WEIGHT
        return self.float() < weight

    def pick(self, values: Sequence[T]) -> T:
        """Return a uniformly chosen element of a non-empty sequence."""
        if not values:
            raise ValueError("cannot pick from an empty sequence")
        return values[self._rng.randrange(len(values))]

    def randint(self, low: int, high: int) -> int:
        """Return an integer in [low, high]."""
        return self._rng.randint(low, high)

    def uniform(self, low: float, high: float) -> float:
        """Return a float in [low, high]."""
        return low + self.float() * (high - low)
