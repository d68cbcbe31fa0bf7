"""Similarity store protocol.

Defines the interface for the vector store that is the system of record
for cached responses. Records are always scoped by tenant.

Implementations can include:
- Redis Stack with vector search (default)
- PostgreSQL with pgvector
- Any other vector database
"""

from typing import Any, Protocol, runtime_checkable

from adaptive_cache.entities import SimilarityCandidate, SimilarityStoreStats, TopQuery


@runtime_checkable
class SimilarityStore(Protocol):
    """Protocol for tenant-scoped vector similarity storage.

    All methods may raise ``AdapterUnavailableError``.
    """

    def lookup(self, tenant_id: str, vector: list[float]) -> SimilarityCandidate | None:
        """Return the nearest record for the tenant, regardless of score.

        Threshold filtering is the caller's job; the store only ranks.
        """
        ...

    def store(
        self,
        tenant_id: str,
        query: str,
        response: str,
        vector: list[float],
        metadata: dict[str, Any],
        ttl: int,
    ) -> str:
        """Upsert a record keyed by tenant and query.

        Returns:
            The record id
        """
        ...

    def delete_by_tenant(self, tenant_id: str) -> int:
        """Delete every record of the tenant.

        Returns:
            Number of records deleted
        """
        ...

    def purge_expired(self) -> int:
        """Delete records past their expiry.

        Returns:
            Number of records deleted
        """
        ...

    def stats_by_tenant(self, tenant_id: str | None = None) -> SimilarityStoreStats:
        """Aggregate numbers for one tenant, or for every tenant."""
        ...

    def top_queries(self, tenant_id: str, limit: int) -> list[TopQuery]:
        """Most frequently served queries of the tenant, most hits first."""
        ...

    def health_check(self) -> bool:
        """Check if the store is reachable."""
        ...
