"""Key derivation for the fast store and similarity-store upserts.

Keys use a 64-bit xxHash of the query. It is not collision free; the
service stores the query text next to the response and rejects a fast
hit whose stored query differs.
"""

import xxhash

DEFAULT_PREFIX = "cache"


def query_hash(query: str) -> str:
    """Return a fixed-width 64-bit hex digest of ``query``."""
    return xxhash.xxh3_64(query.encode("utf-8")).hexdigest()


def tenant_prefix(tenant_id: str, prefix: str = DEFAULT_PREFIX) -> str:
    """Key prefix shared by every fast-store key of a tenant."""
    return f"{prefix}:{tenant_id}:"


def fast_key(tenant_id: str, query: str, prefix: str = DEFAULT_PREFIX) -> str:
    """Fast-store key for a tenant's query: ``<prefix>:<tenant>:<hash>``."""
    return f"{tenant_prefix(tenant_id, prefix)}{query_hash(query)}"
