"""Cache entry domain entity."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

FAST_ENTRY_PREFIX = "fast:"


@dataclass(frozen=True)
class CacheEntryEntity:
    """A resolved cache hit handed back to callers.

    A new entity is built for every hit; the backing records live in the
    fast store or the similarity store and expire there by TTL.

    Attributes:
        id: ``"fast:<key>"`` for exact hits, the similarity-store id otherwise
        query: The query the caller asked
        response: The cached model response
        similarity: Cosine similarity in [0, 1] (1.0 for exact hits)
        hit_count: Times the backing record has been served
        last_hit_at: When this hit happened
        expires_at: When the backing record expires, if known
        metadata: Opaque caller metadata stored with the response
    """

    id: str
    query: str
    response: str
    similarity: float
    hit_count: int
    last_hit_at: datetime
    expires_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_exact(self) -> bool:
        """True when served by the fast store."""
        return self.id.startswith(FAST_ENTRY_PREFIX)
