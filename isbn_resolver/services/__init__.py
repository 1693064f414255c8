from .cache import LookupCache, NoOpCache
from .circuit_breaker import CircuitBreaker, CircuitSnapshot, CircuitState
from .fallback import FallbackProvider
from .open_library import OpenLibraryClient
from .resolver import IsbnResolver, get_resolver, reset_resolver
from .retry import RetryPolicy

__all__ = [
    "CircuitBreaker",
    "CircuitSnapshot",
    "CircuitState",
    "FallbackProvider",
    "IsbnResolver",
    "LookupCache",
    "NoOpCache",
    "OpenLibraryClient",
    "RetryPolicy",
    "get_resolver",
    "reset_resolver",
]
