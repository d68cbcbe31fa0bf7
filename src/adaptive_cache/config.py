import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import redis
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from adaptive_cache.errors import ConfigurationError

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment variables."""

    # Redis
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    redis_password: str | None = os.getenv("REDIS_PASSWORD")

    # Storage layout
    cache_index_name: str = os.getenv("CACHE_INDEX_NAME", "semantic_cache")
    cache_key_prefix: str = os.getenv("CACHE_KEY_PREFIX", "cache")
    metrics_key_prefix: str = os.getenv("METRICS_KEY_PREFIX", "cache_metrics")

    # Threshold control
    similarity_threshold: float = float(os.getenv("CACHE_SIMILARITY_THRESHOLD", "0.95"))
    adaptive_threshold: bool = _env_bool("CACHE_ADAPTIVE_THRESHOLD", "true")
    threshold_adjustment_rate: float = float(os.getenv("CACHE_THRESHOLD_ADJUSTMENT_RATE", "0.01"))
    min_threshold: float = float(os.getenv("CACHE_MIN_THRESHOLD", "0.90"))
    max_threshold: float = float(os.getenv("CACHE_MAX_THRESHOLD", "0.98"))
    target_hit_rate: float = float(os.getenv("CACHE_TARGET_HIT_RATE", "0.75"))

    # Cache behaviour
    cache_ttl: int = int(os.getenv("CACHE_TTL", "86400"))  # 24 hours
    warming_enabled: bool = _env_bool("CACHE_WARMING_ENABLED", "true")
    fast_store_enabled: bool = _env_bool("CACHE_FAST_STORE_ENABLED", "true")
    operation_timeout: float = float(os.getenv("CACHE_OPERATION_TIMEOUT", "2.0"))
    warming_delay: float = float(os.getenv("CACHE_WARMING_DELAY", "5.0"))

    # Embedding
    embedding_model: str = os.getenv("EMBEDDING_MODEL", "embeddinggemma")
    ollama_base_url: str = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")

    log_level: str = os.getenv("LOG_LEVEL", "INFO")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


class CacheConfig(BaseModel):
    """Tuning knobs for ``CacheService``.

    Every field is frozen except ``fast_store_enabled``, which the service
    switches off in place the first time the fast store fails.
    """

    model_config = ConfigDict(validate_assignment=True)

    similarity_threshold: float = Field(0.95, ge=0.0, le=1.0, frozen=True)
    adaptive_threshold: bool = Field(True, frozen=True)
    threshold_adjustment_rate: float = Field(0.01, gt=0.0, le=1.0, frozen=True)
    min_threshold: float = Field(0.90, ge=0.0, le=1.0, frozen=True)
    max_threshold: float = Field(0.98, ge=0.0, le=1.0, frozen=True)
    target_hit_rate: float = Field(0.75, ge=0.0, le=1.0, frozen=True)
    expiration_seconds: int = Field(86400, gt=0, frozen=True)
    warming_enabled: bool = Field(True, frozen=True)
    fast_store_enabled: bool = True

    operation_timeout: float = Field(2.0, gt=0.0, frozen=True)
    observation_window: int = Field(100, gt=0, frozen=True)
    warming_batch_size: int = Field(5, gt=0, frozen=True)
    warming_query_limit: int = Field(20, gt=0, frozen=True)
    warming_delay_seconds: float = Field(5.0, ge=0.0, frozen=True)

    @model_validator(mode="after")
    def _check_bounds(self) -> "CacheConfig":
        if self.min_threshold > self.max_threshold:
            raise ValueError(
                f"min_threshold ({self.min_threshold}) must not exceed "
                f"max_threshold ({self.max_threshold})"
            )
        if not self.min_threshold <= self.similarity_threshold <= self.max_threshold:
            raise ValueError(
                f"similarity_threshold ({self.similarity_threshold}) must lie within "
                f"[{self.min_threshold}, {self.max_threshold}]"
            )
        return self

    @classmethod
    def create(cls, **overrides: Any) -> "CacheConfig":
        """Build a config, turning validation failures into ConfigurationError.

        Example:
            ```python
            config = CacheConfig.create(similarity_threshold=0.93, warming_enabled=False)
            ```
        """
        try:
            return cls(**overrides)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid cache configuration: {e}") from e

    @classmethod
    def from_settings(cls, source: Settings | None = None, **overrides: Any) -> "CacheConfig":
        """Build a config from environment settings, with optional overrides."""
        source = source or settings
        values: dict[str, Any] = {
            "similarity_threshold": source.similarity_threshold,
            "adaptive_threshold": source.adaptive_threshold,
            "threshold_adjustment_rate": source.threshold_adjustment_rate,
            "min_threshold": source.min_threshold,
            "max_threshold": source.max_threshold,
            "target_hit_rate": source.target_hit_rate,
            "expiration_seconds": source.cache_ttl,
            "warming_enabled": source.warming_enabled,
            "fast_store_enabled": source.fast_store_enabled,
            "operation_timeout": source.operation_timeout,
            "warming_delay_seconds": source.warming_delay,
        }
        values.update(overrides)
        return cls.create(**values)


def get_redis_client() -> redis.Redis:
    """Create a Redis client instance."""
    return redis.from_url(
        settings.redis_url,
        password=settings.redis_password,
        decode_responses=False,
    )


def configure_logging(level: str | None = None) -> None:
    """Install a basic log format for host processes and scripts."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
