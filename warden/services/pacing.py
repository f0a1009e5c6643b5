"""
Group Warden - Dynamic Delay Scheduler
======================================

Maps a corrective-action counter to the pause taken after that action.

DESIGN:
    Actions run in a 16-step rhythm: 5 fast, 6 slow, 5 fast. Positions
    0-4 and 11-15 of the cycle draw from the fast band, 5-10 from the
    slow band. The long-run average stays low while short bursts of
    corrections still land quickly. Draws are uniform integers in
    milliseconds, inclusive on both ends.
"""

import random
from dataclasses import dataclass
from typing import Optional

from warden.core.config import Config


CYCLE_LENGTH = 16
SLOW_START = 5
SLOW_END = 11  # exclusive


@dataclass(frozen=True)
class DelayBand:
    """Inclusive millisecond range."""

    min_ms: int
    max_ms: int
    name: str = ""

    def draw(self, rng: random.Random) -> int:
        return rng.randint(self.min_ms, self.max_ms)

    def __contains__(self, value: object) -> bool:
        return isinstance(value, int) and self.min_ms <= value <= self.max_ms


def is_fast_position(count: int) -> bool:
    cycle = count % CYCLE_LENGTH
    return cycle < SLOW_START or cycle >= SLOW_END


class DelayScheduler:
    """Draws per-action delays from the fast or slow band."""

    def __init__(self, fast: DelayBand, slow: DelayBand, rng: Optional[random.Random] = None) -> None:
        self.fast = fast
        self.slow = slow
        self._rng = rng or random.Random()

    @classmethod
    def from_config(cls, config: Config, rng: Optional[random.Random] = None) -> "DelayScheduler":
        return cls(
            fast=DelayBand(config.fast_delay_min_ms, config.fast_delay_max_ms, "fast"),
            slow=DelayBand(config.slow_delay_min_ms, config.slow_delay_max_ms, "slow"),
            rng=rng,
        )

    def band_for(self, count: int) -> DelayBand:
        return self.fast if is_fast_position(count) else self.slow

    def delay_ms(self, count: int) -> int:
        """
        Delay in milliseconds after the action numbered ``count``.

        Args:
            count: Action counter (non-negative).

        Returns:
            Uniform random integer from the band selected by ``count mod 16``.
        """
        return self.band_for(count).draw(self._rng)

    def delay_seconds(self, count: int) -> float:
        return self.delay_ms(count) / 1000


__all__ = ["DelayBand", "DelayScheduler", "is_fast_position", "CYCLE_LENGTH"]
