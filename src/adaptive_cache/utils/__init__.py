"""Utility modules for the adaptive cache."""

from .aio import bounded, caller_cancelled, run_blocking
from .hashing import fast_key, query_hash, tenant_prefix

__all__ = [
    "bounded",
    "caller_cancelled",
    "fast_key",
    "query_hash",
    "run_blocking",
    "tenant_prefix",
]
