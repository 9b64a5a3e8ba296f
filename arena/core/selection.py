"""Provider ordering strategies.

The orchestrator hands a strategy the names of currently available providers
and receives the fallback order to try them in. Strategies never see
unavailable providers and never perform I/O.
"""

import random
from typing import Callable, Protocol


class SelectionStrategy(Protocol):
    """Minimal interface the orchestrator requires from a strategy."""

    def select_candidates(self, available: list[str]) -> list[str]:
        """Return `available` in the order providers should be attempted."""
        ...


class RandomSelection:
    """Uniform random permutation; every provider is treated equally."""

    name = "random"

    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()

    def select_candidates(self, available: list[str]) -> list[str]:
        ordered = list(available)
        self._rng.shuffle(ordered)
        return ordered


class LeastErrorsSelection:
    """Fewest consecutive errors first, random order among equals.

    Args:
        error_count: Callable returning the current error count for a name,
            normally `Orchestrator.error_count`.
    """

    name = "least_errors"

    def __init__(self, error_count: Callable[[str], int], rng: random.Random | None = None):
        self._error_count = error_count
        self._rng = rng or random.Random()

    def select_candidates(self, available: list[str]) -> list[str]:
        ordered = list(available)
        self._rng.shuffle(ordered)
        # Stable sort keeps the shuffle as the tie-break.
        return sorted(ordered, key=self._error_count)
