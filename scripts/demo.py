#!/usr/bin/env python3
"""
Demo script for the adaptive semantic cache.

Requires Redis Stack and a running Ollama with an embedding model:

    docker run -p 6379:6379 redis/redis-stack-server
    ollama pull embeddinggemma
"""

import asyncio
import time

from adaptive_cache import CacheService, configure_logging

TENANT = "demo-project"


def print_section(title: str) -> None:
    """Print a section header."""
    print("\n" + "=" * 70)
    print(f"  {title}")
    print("=" * 70)


async def demo_basic_cache(cache: CacheService) -> None:
    """Store a few answers, then ask exact and paraphrased questions."""
    print_section("Basic Cache Operations")

    qa_pairs = [
        (
            "What is a semantic cache?",
            "A semantic cache returns stored answers for questions that mean the same thing.",
        ),
        (
            "How do embeddings work?",
            "Embeddings map text to vectors so that similar meanings end up close together.",
        ),
        (
            "How is cosine similarity computed?",
            "Cosine similarity is the dot product of two vectors divided by their norms.",
        ),
    ]

    print("\nStoring sample Q&A pairs...")
    for prompt, response in qa_pairs:
        await cache.store_in_cache(TENANT, prompt, response, {"source": "demo"})
        print(f"  stored: {prompt}")

    queries = [
        "What is a semantic cache?",  # exact, served by the fast store
        "Explain what a semantic cache is",  # paraphrase, similarity store
        "How do I deploy to production?",  # unrelated
    ]
    for query in queries:
        start = time.perf_counter()
        entry = await cache.check_cache(TENANT, query)
        elapsed = (time.perf_counter() - start) * 1000
        print(f"\n  Query: {query}")
        if entry is None:
            print(f"  miss ({elapsed:.1f}ms)")
        else:
            source = "fast store" if entry.is_exact else "similarity store"
            print(f"  HIT from {source}, similarity {entry.similarity:.3f} ({elapsed:.1f}ms)")
            print(f"  Response: {entry.response[:80]}")


async def demo_analytics(cache: CacheService) -> None:
    """Show analytics and stats for the demo tenant."""
    print_section("Analytics")

    analytics = await cache.get_cache_analytics(TENANT, "1h")
    print(f"  Queries: {analytics.total_queries}  hit rate: {analytics.hit_rate:.0%}")
    print(f"  Threshold: {analytics.current_threshold:.3f}  recommended: {analytics.recommended_threshold:.3f}")

    stats = await cache.get_cache_stats(TENANT)
    print(f"  Entries: {stats.total_entries}  fast-store keys: {stats.fast_store_entries}")
    print(f"  Avg lookup: {stats.average_response_time_ms:.1f}ms")


async def main() -> None:
    configure_logging()
    cache = CacheService.create(warming_enabled=False)
    try:
        await demo_basic_cache(cache)
        await demo_analytics(cache)
        removed = await cache.invalidate_project_cache(TENANT)
        print(f"\nCleaned up {removed} demo entries")
    finally:
        await cache.close()


if __name__ == "__main__":
    asyncio.run(main())
