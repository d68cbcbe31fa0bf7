"""Hit/miss observation used by threshold adaptation."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Observation:
    """One ``check_cache`` outcome.

    Attributes:
        hit: Whether the lookup was served from cache
        similarity: Best similarity seen, None when no candidate existed
    """

    hit: bool
    similarity: float | None = None
