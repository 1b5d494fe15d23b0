"""Per-span sampling applied after the filter has matched."""

from __future__ import annotations

import random


class Sampler:
    """Accepts a filter-matched record with probability *rate*.

    Each call to accept() is an independent draw r in [0, 1); the record
    is accepted iff r < rate. Pass a seeded ``random.Random`` for
    reproducible draws; the default generator is unseeded.
    """

    def __init__(self, rate: float, rng: random.Random | None = None) -> None:
        if not 0.0 <= rate <= 1.0:
            raise ValueError(f"sampling rate must be in [0, 1], got {rate}")
        self.rate = rate
        self._rng = rng or random.Random()  # noqa: S311

    def accept(self) -> bool:
        return self._rng.random() < self.rate
