"""
Tiered latency generator behind GET /api/test.

Distribution (roll = uniform int in [1, 100]):
  - 70% fast:       5-50ms
  - 20% medium:    50-200ms
  -  8% slow:     200-500ms
  -  2% very slow: 500-2000ms
"""
import random
import time
from enum import Enum


class LatencyTier(Enum):
    FAST = ("fast", 5, 50)
    MEDIUM = ("medium", 50, 200)
    SLOW = ("slow", 200, 500)
    VERY_SLOW = ("very_slow", 500, 2000)

    def __init__(self, label, min_ms, max_ms):
        self.label = label
        self.min_ms = min_ms
        self.max_ms = max_ms


# (highest roll, tier); first match wins
TIER_THRESHOLDS = (
    (70, LatencyTier.FAST),
    (90, LatencyTier.MEDIUM),
    (98, LatencyTier.SLOW),
    (100, LatencyTier.VERY_SLOW),
)


def select_tier(roll):
    if roll < 1 or roll > 100:
        raise ValueError(f"roll must be in [1, 100], got {roll}")
    for upper, tier in TIER_THRESHOLDS:
        if roll <= upper:
            return tier


class LatencyGenerator:
    """Draws one sleep duration per call and blocks the caller for it.

    ``rng`` defaults to ``random.SystemRandom`` so draws come from OS entropy;
    tests pass a seeded ``random.Random``. ``sleep`` is the blocking call and
    only ever suspends the thread serving the current request.
    """

    def __init__(self, rng=None, sleep=time.sleep):
        self.rng = rng if rng is not None else random.SystemRandom()
        self._sleep = sleep

    def draw(self):
        tier = select_tier(self.rng.randint(1, 100))
        return tier, self.rng.randint(tier.min_ms, tier.max_ms)

    def simulate(self):
        _, sleep_ms = self.draw()
        self._sleep(sleep_ms / 1000.0)
        return sleep_ms
