"""Self-tuning similarity threshold.

The controller owns the live threshold and a bounded buffer of recent
hit/miss observations. Once the buffer holds a full window, the hit rate
is compared against the target and the threshold moves one step:

- below target: loosen (threshold - rate, floored at min_threshold)
- above target + 0.10: tighten (threshold + rate, capped at max_threshold)
- otherwise: leave it alone (dead band)

The buffer is cleared after every evaluation.

All state is guarded by one ``threading.Lock``. The critical sections
never await or do I/O, so the lock is safe to take from the event loop
and from worker threads alike.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass

from adaptive_cache.config import CacheConfig
from adaptive_cache.entities import Observation

logger = logging.getLogger(__name__)

DEAD_BAND = 0.10


@dataclass(frozen=True)
class ThresholdSnapshot:
    """Point-in-time copy of the controller state."""

    current_threshold: float
    pending_observations: int
    adjustments: int


class ThresholdController:
    """Process-wide adaptive threshold, shared by every lookup.

    Example:
        ```python
        controller = ThresholdController(CacheConfig.create())
        threshold = controller.current_threshold  # snapshot before I/O
        ...
        controller.record(hit=True, similarity=0.97)
        ```
    """

    def __init__(self, config: CacheConfig) -> None:
        self._config = config
        self._threshold = config.similarity_threshold
        self._observations: deque[Observation] = deque(maxlen=config.observation_window)
        self._adjustments = 0
        self._lock = threading.Lock()

    @property
    def current_threshold(self) -> float:
        with self._lock:
            return self._threshold

    @property
    def pending_observations(self) -> int:
        with self._lock:
            return len(self._observations)

    def observations(self) -> tuple[Observation, ...]:
        """Copy of the buffered observations, oldest first."""
        with self._lock:
            return tuple(self._observations)

    def snapshot(self) -> ThresholdSnapshot:
        with self._lock:
            return ThresholdSnapshot(
                current_threshold=self._threshold,
                pending_observations=len(self._observations),
                adjustments=self._adjustments,
            )

    def record(self, hit: bool, similarity: float | None = None) -> bool:
        """Append an observation, adjusting when the window fills.

        Append and the possible adjustment form one critical section, so
        concurrent callers never lose an observation.

        Returns:
            True if this call ran an adjustment pass
        """
        with self._lock:
            self._observations.append(Observation(hit=hit, similarity=similarity))
            if len(self._observations) >= self._config.observation_window:
                return self._adjust_locked()
        return False

    def adjust(self) -> bool:
        """Run one adjustment pass if the window is full.

        Returns:
            True if the pass ran (whether or not the threshold moved)
        """
        with self._lock:
            return self._adjust_locked()

    def _adjust_locked(self) -> bool:
        config = self._config
        if not config.adaptive_threshold or len(self._observations) < config.observation_window:
            return False

        hits = sum(1 for o in self._observations if o.hit)
        hit_rate = hits / len(self._observations)
        previous = self._threshold

        if hit_rate < config.target_hit_rate:
            self._threshold = max(config.min_threshold, previous - config.threshold_adjustment_rate)
        elif hit_rate > config.target_hit_rate + DEAD_BAND:
            self._threshold = min(config.max_threshold, previous + config.threshold_adjustment_rate)

        self._observations.clear()
        self._adjustments += 1

        if self._threshold != previous:
            logger.info(
                "Adjusted cache threshold %.4f -> %.4f (hit rate: %.2f)",
                previous, self._threshold, hit_rate,
            )
        else:
            logger.debug("Cache threshold kept at %.4f (hit rate: %.2f)", previous, hit_rate)
        return True
