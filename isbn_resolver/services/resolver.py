"""Resilient ISBN resolution.

Composes the lookup cache, circuit breaker, upstream client and fallback
provider. A single lookup goes cache -> breaker -> upstream -> fallback, and
every outcome is returned as a ``LookupResult`` rather than raised.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Union

from isbn_resolver.config import ResilienceConfig
from isbn_resolver.errors import (
    BookNotFoundError,
    ConfigurationError,
    InvalidIsbnError,
    UpstreamError,
)
from isbn_resolver.models import (
    SOURCE_API,
    SOURCE_CACHE,
    SOURCE_LOCAL,
    BatchResult,
    BatchSummary,
    BookRecord,
    LookupResult,
    SearchResult,
)
from isbn_resolver.services.cache import LookupCache, NoOpCache
from isbn_resolver.services.circuit_breaker import CircuitBreaker
from isbn_resolver.services.fallback import FallbackProvider
from isbn_resolver.services.open_library import OpenLibraryClient
from isbn_resolver.services.retry import RetryPolicy
from isbn_resolver.utils.books import IsbnValidation, validate_isbn

logger = logging.getLogger("isbn_resolver")

SERVICE_UNAVAILABLE = "Book lookup service temporarily unavailable"
HEALTH_CHECK_ISBN = "9780451524935"
MAX_TITLE_LENGTH = 500


class IsbnResolver:
    """Resolve book metadata for ISBNs on top of an unreliable upstream client.

    ``client`` must provide ``fetch_by_isbn(isbn) -> BookRecord`` and
    ``search_by_title(title, limit) -> List[BookRecord]``, raising
    BookNotFoundError or UpstreamError. Components not passed in are built
    from ``config``.
    """

    def __init__(
        self,
        client: Any,
        config: Optional[ResilienceConfig] = None,
        cache: Optional[Union[LookupCache, NoOpCache]] = None,
        breaker: Optional[CircuitBreaker] = None,
        fallback: Optional[FallbackProvider] = None,
        validator: Callable[[str], IsbnValidation] = validate_isbn,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self.config = config or ResilienceConfig()
        self.config.validate()
        self.client = client
        self.validator = validator

        if cache is not None:
            self.cache = cache
        elif self.config.enable_cache:
            self.cache = LookupCache(
                max_size=self.config.cache_max_size,
                default_ttl=self.config.cache_ttl,
            )
        else:
            self.cache = NoOpCache()

        self.breaker = breaker or CircuitBreaker(
            failure_threshold=self.config.failure_threshold,
            recovery_timeout=self.config.recovery_timeout,
            half_open_max_calls=self.config.half_open_max_calls,
        )
        self.fallback = fallback or FallbackProvider(validator=validator)
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=self.config.retry_max_attempts,
            base_delay=self.config.retry_base_delay,
            max_delay=self.config.retry_max_delay,
            backoff_multiplier=self.config.retry_backoff_multiplier,
            jitter=self.config.retry_jitter,
        )

    # -----------------------------
    # Lookups
    # -----------------------------

    def _normalize(self, raw_isbn: str) -> str:
        validation = self.validator(raw_isbn)
        if not validation.is_valid or not validation.normalized_isbn:
            raise InvalidIsbnError(f"Invalid ISBN: {validation.error or 'unknown error'}")
        return validation.normalized_isbn

    def _fetch(self, isbn: str) -> BookRecord:
        if self.config.enable_retry:
            return self.retry_policy.execute(lambda: self.client.fetch_by_isbn(isbn))
        return self.client.fetch_by_isbn(isbn)

    def _allow_request(self) -> bool:
        if not self.config.enable_circuit_breaker:
            return True
        return self.breaker.allow_request()

    def _record_success(self) -> None:
        if self.config.enable_circuit_breaker:
            self.breaker.record_success()

    def _record_failure(self) -> None:
        if self.config.enable_circuit_breaker:
            self.breaker.record_failure()

    def _fallback(
        self, isbn: str, start: float, error: str, source: str = SOURCE_API
    ) -> LookupResult:
        """Serve fallback data, or a failure labelled with ``source`` when disabled."""
        elapsed = time.monotonic() - start
        if not self.config.enable_fallback:
            return LookupResult.failed(isbn, error, source, elapsed)
        logger.warning(f"Serving fallback data for ISBN {isbn}: {error}")
        result = self.fallback.lookup(isbn)
        result.response_time = elapsed
        return result

    def lookup_book(self, raw_isbn: str) -> LookupResult:
        """Resolve one ISBN. Never raises for expected conditions."""
        start = time.monotonic()
        try:
            isbn = self._normalize(raw_isbn)
        except InvalidIsbnError as e:
            logger.debug(f"Rejected lookup for {raw_isbn!r}: {e}")
            return LookupResult.failed(str(raw_isbn or ""), str(e), SOURCE_LOCAL)

        cached = self.cache.get(isbn)
        if cached is not None:
            if not cached.success and self.config.enable_fallback:
                return self._fallback(isbn, start, cached.error or "Book not found")
            return replace(
                cached, source=SOURCE_CACHE, response_time=time.monotonic() - start
            )

        if not self._allow_request():
            logger.debug(f"Circuit open, skipping upstream call for ISBN {isbn}")
            # No upstream call was made
            return self._fallback(isbn, start, SERVICE_UNAVAILABLE, SOURCE_LOCAL)

        try:
            book = self._fetch(isbn)
        except BookNotFoundError as e:
            # The upstream answered, so this counts as a healthy call
            self._record_success()
            not_found = LookupResult.failed(
                isbn, str(e), SOURCE_API, time.monotonic() - start
            )
            self.cache.put(isbn, not_found, ttl=self.config.not_found_ttl)
            logger.info(f"ISBN {isbn} not found upstream")
            if self.config.enable_fallback:
                return self._fallback(isbn, start, str(e))
            return not_found
        except UpstreamError as e:
            self._record_failure()
            logger.warning(f"Upstream lookup failed for ISBN {isbn}: {e}")
            return self._fallback(isbn, start, str(e))
        except Exception as e:  # noqa: BLE001
            self._record_failure()
            logger.exception(f"Unexpected error from upstream client for ISBN {isbn}")
            return self._fallback(isbn, start, f"Lookup failed: {e}")

        self._record_success()
        result = LookupResult.found(isbn, book, SOURCE_API, time.monotonic() - start)
        self.cache.put(isbn, result)
        logger.debug(f"Resolved ISBN {isbn} from upstream in {result.response_time:.3f}s")
        return result

    def lookup_books(self, isbns: List[str]) -> BatchResult:
        """Resolve many ISBNs concurrently.

        Invalid entries are reported under their raw value. Valid entries are
        deduplicated on the normalized ISBN and resolved once each.
        ``summary.total`` counts the distinct entries in ``results``.
        """
        batch = BatchResult()
        if not isbns:
            return batch

        first_position: Dict[str, int] = {}
        results: Dict[str, LookupResult] = {}
        for position, raw in enumerate(isbns):
            try:
                key = self._normalize(raw)
            except InvalidIsbnError as e:
                key = str(raw)
                results.setdefault(key, LookupResult.failed(key, str(e), SOURCE_LOCAL))
            first_position.setdefault(key, position)

        pending = [key for key in first_position if key not in results]
        logger.debug(
            f"Batch lookup for {len(isbns)} ISBNs ({len(pending)} distinct valid)"
        )

        if pending:
            workers = min(self.config.batch_max_workers, len(pending))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {executor.submit(self.lookup_book, isbn): isbn for isbn in pending}
                for future in as_completed(futures):
                    isbn = futures[future]
                    try:
                        results[isbn] = future.result()
                    except Exception as e:  # noqa: BLE001
                        logger.exception(f"Batch lookup failed for ISBN {isbn}")
                        results[isbn] = LookupResult.failed(
                            isbn, f"Lookup failed: {e}", SOURCE_LOCAL
                        )

        summary = BatchSummary()
        for key in sorted(results, key=lambda k: first_position[k]):
            result = results[key]
            batch.results[key] = result
            summary.total += 1
            if result.source == SOURCE_CACHE:
                summary.cached += 1
            elif result.source == SOURCE_API:
                summary.api_calls += 1
            if result.success:
                summary.successful += 1
            else:
                summary.failed += 1
                batch.errors.append(f"[{first_position[key]}] {key}: {result.error}")
        batch.summary = summary

        logger.info(
            f"Batch lookup done: {summary.successful}/{summary.total} successful, "
            f"{summary.cached} cached, {summary.api_calls} from API"
        )
        return batch

    def search_by_title(self, title: str, limit: int = 10) -> SearchResult:
        """Uncached title search straight against the upstream client."""
        if not isinstance(title, str) or not title.strip():
            return SearchResult(success=False, error="Title is required")
        try:
            limit = max(1, min(int(limit), 100))
        except (TypeError, ValueError):
            return SearchResult(success=False, error=f"Invalid limit: {limit!r}")
        try:
            books = self.client.search_by_title(title.strip(), limit)
        except UpstreamError as e:
            logger.warning(f"Title search failed for '{title}': {e}")
            return SearchResult(success=False, error=str(e))
        except Exception as e:  # noqa: BLE001
            logger.exception(f"Unexpected error during title search for '{title}'")
            return SearchResult(success=False, error=f"Search failed: {e}")
        return SearchResult(success=True, books=list(books)[:limit])

    # -----------------------------
    # Health, stats and administration
    # -----------------------------

    def check_service_health(self) -> Dict[str, Any]:
        """Probe the upstream with a well-known ISBN.

        The probe does not feed the circuit breaker.
        """
        start = time.monotonic()
        available = True
        error = None
        try:
            self.client.fetch_by_isbn(HEALTH_CHECK_ISBN)
        except BookNotFoundError:
            pass
        except Exception as e:  # noqa: BLE001
            available = False
            error = str(e) or type(e).__name__
            logger.warning(f"Health check failed: {error}")
        return {
            "available": available,
            "response_time": time.monotonic() - start,
            "error": error,
            "cache_stats": self.cache.stats(),
            "circuit_state": self.breaker.snapshot().state.value,
        }

    def get_resilience_stats(self) -> Dict[str, Any]:
        return {
            "circuit_breaker": self.breaker.snapshot().to_dict(),
            "fallback": self.fallback.stats(),
            "cache": self.cache.stats(),
            "config": self.config.to_dict(),
        }

    def reset_resilience(self) -> None:
        """Force the circuit breaker closed. Cache and fallback data are kept."""
        self.breaker.reset()
        logger.info("Resilience mechanisms reset")

    def clear_cache(self) -> None:
        self.cache.clear()

    def get_cache_stats(self) -> Dict[str, Any]:
        return self.cache.stats()

    def add_fallback_book(self, isbn: str, title: str) -> bool:
        """Register curated fallback data. Returns False if rejected."""
        try:
            if not isinstance(title, str) or not title.strip():
                raise ConfigurationError("title is required")
            if len(title.strip()) > MAX_TITLE_LENGTH:
                raise ConfigurationError(
                    f"title must be at most {MAX_TITLE_LENGTH} characters"
                )
        except ConfigurationError as e:
            logger.warning(f"Rejected fallback book for ISBN {isbn!r}: {e}")
            return False
        return self.fallback.add_entry(
            isbn, {"title": title.strip(), "source": "manual", "confidence": "medium"}
        )

    def clear_fallback_data(self) -> None:
        self.fallback.clear()


# Process-wide instance for callers that do not build their own
_resolver_instance: Optional[IsbnResolver] = None
_resolver_lock = threading.Lock()


def get_resolver() -> IsbnResolver:
    """Get or create the global resolver instance."""
    global _resolver_instance
    with _resolver_lock:
        if _resolver_instance is None:
            config = ResilienceConfig.from_env()
            client = OpenLibraryClient(timeout=config.request_timeout)
            _resolver_instance = IsbnResolver(client, config=config)
        return _resolver_instance


def reset_resolver() -> None:
    global _resolver_instance
    with _resolver_lock:
        _resolver_instance = None
