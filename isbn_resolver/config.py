"""Resilience configuration, read from ISBN_RESOLVER_* environment variables."""

import os
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from isbn_resolver.errors import ConfigurationError

ENV_PREFIX = "ISBN_RESOLVER_"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from e


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from e


def _env_ttl(name: str, default: Optional[float]) -> Optional[float]:
    """Like _env_float, but 'none' or 'off' disables expiry."""
    raw = os.environ.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    if raw.strip().lower() in ("none", "off"):
        return None
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from e


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ResilienceConfig:
    cache_max_size: int = 1000
    # Seconds; None keeps entries until evicted
    cache_ttl: Optional[float] = None
    # TTL for confirmed not-found results; None falls back to cache_ttl
    not_found_ttl: Optional[float] = None

    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    half_open_max_calls: int = 1

    request_timeout: float = 10.0
    retry_max_attempts: int = 3
    retry_base_delay: float = 0.5
    retry_max_delay: float = 5.0
    retry_backoff_multiplier: float = 2.0
    retry_jitter: bool = True

    batch_max_workers: int = 5

    enable_cache: bool = True
    enable_circuit_breaker: bool = True
    enable_fallback: bool = True
    enable_retry: bool = True

    @classmethod
    def from_env(cls) -> "ResilienceConfig":
        """Build a config from the environment, falling back to the defaults."""
        d = cls()
        config = cls(
            cache_max_size=_env_int("CACHE_MAX_SIZE", d.cache_max_size),
            cache_ttl=_env_ttl("CACHE_TTL", d.cache_ttl),
            not_found_ttl=_env_ttl("NOT_FOUND_TTL", d.not_found_ttl),
            failure_threshold=_env_int("FAILURE_THRESHOLD", d.failure_threshold),
            recovery_timeout=_env_float("RECOVERY_TIMEOUT", d.recovery_timeout),
            half_open_max_calls=_env_int("HALF_OPEN_MAX_CALLS", d.half_open_max_calls),
            request_timeout=_env_float("REQUEST_TIMEOUT", d.request_timeout),
            retry_max_attempts=_env_int("RETRY_MAX_ATTEMPTS", d.retry_max_attempts),
            retry_base_delay=_env_float("RETRY_BASE_DELAY", d.retry_base_delay),
            retry_max_delay=_env_float("RETRY_MAX_DELAY", d.retry_max_delay),
            retry_backoff_multiplier=_env_float(
                "RETRY_BACKOFF_MULTIPLIER", d.retry_backoff_multiplier
            ),
            retry_jitter=_env_bool("RETRY_JITTER", d.retry_jitter),
            batch_max_workers=_env_int("BATCH_MAX_WORKERS", d.batch_max_workers),
            enable_cache=_env_bool("ENABLE_CACHE", d.enable_cache),
            enable_circuit_breaker=_env_bool(
                "ENABLE_CIRCUIT_BREAKER", d.enable_circuit_breaker
            ),
            enable_fallback=_env_bool("ENABLE_FALLBACK", d.enable_fallback),
            enable_retry=_env_bool("ENABLE_RETRY", d.enable_retry),
        )
        config.validate()
        return config

    def validate(self) -> None:
        if self.cache_max_size < 1:
            raise ConfigurationError("cache_max_size must be at least 1")
        for name in ("cache_ttl", "not_found_ttl"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ConfigurationError(f"{name} must be positive or None")
        if self.failure_threshold < 1:
            raise ConfigurationError("failure_threshold must be at least 1")
        if self.recovery_timeout <= 0:
            raise ConfigurationError("recovery_timeout must be positive")
        if self.half_open_max_calls < 1:
            raise ConfigurationError("half_open_max_calls must be at least 1")
        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive")
        if self.retry_max_attempts < 1:
            raise ConfigurationError("retry_max_attempts must be at least 1")
        if self.retry_base_delay < 0 or self.retry_max_delay < 0:
            raise ConfigurationError("retry delays cannot be negative")
        if self.batch_max_workers < 1:
            raise ConfigurationError("batch_max_workers must be at least 1")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
