"""Exception taxonomy for the adaptive cache.

Only ``ConfigurationError`` is meant to reach callers of ``CacheService``
lookups and writes; adapter and embedding failures are caught at the
service boundary and turned into misses.
"""


class CacheError(Exception):
    """Base class for all cache errors."""


class AdapterUnavailableError(CacheError):
    """A backing store (fast, similarity or metrics) could not be reached."""

    def __init__(self, adapter: str, message: str) -> None:
        super().__init__(f"{adapter}: {message}")
        self.adapter = adapter


class EmbeddingError(CacheError):
    """Embedding generation failed, timed out or hit a quota."""


class ConfigurationError(CacheError, ValueError):
    """Invalid cache configuration (raised at construction only)."""
