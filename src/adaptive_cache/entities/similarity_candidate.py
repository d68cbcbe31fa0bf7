"""Similarity-store lookup result."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class SimilarityCandidate:
    """Best nearest-neighbour match for a tenant's query embedding.

    Attributes:
        id: Similarity-store record id
        query: The query text stored with the record
        response: The cached response
        similarity: Cosine similarity (1 = identical, 0 = unrelated)
        hit_count: Times this record has been returned by a lookup
        expires_at: Unix timestamp when the record expires, if known
        metadata: Metadata stored with the record
    """

    id: str
    query: str
    response: str
    similarity: float
    hit_count: int = 0
    expires_at: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
