"""Fast key-value store protocol.

The fast store holds exact-match projections of similarity-store records.
It is optional: the service stops using it after the first failure.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class FastStore(Protocol):
    """Protocol for an in-memory key-value store with TTL support.

    All methods may raise ``AdapterUnavailableError``.
    """

    def get(self, key: str) -> bytes | None:
        """Return the value stored under ``key``, or None."""
        ...

    def set_with_ttl(self, key: str, value: bytes, ttl: int) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds."""
        ...

    def delete_by_prefix(self, prefix: str) -> int:
        """Delete every key starting with ``prefix``.

        Returns:
            Number of keys deleted
        """
        ...

    def list_keys(self, prefix: str) -> list[str]:
        """List keys starting with ``prefix``."""
        ...

    def health_check(self) -> bool:
        """Check if the store is reachable."""
        ...
