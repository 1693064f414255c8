"""Tests for batch lookups and their summary accounting."""

import threading

from conftest import ISBN_A, ISBN_B, ISBN_C, FakeUpstream, make_book

from isbn_resolver.config import ResilienceConfig
from isbn_resolver.services.resolver import IsbnResolver


def test_empty_batch():
    resolver = IsbnResolver(FakeUpstream(), config=ResilienceConfig(enable_retry=False))
    batch = resolver.lookup_books([])

    assert batch.results == {}
    assert batch.summary.total == 0
    assert batch.errors == []


def test_cached_and_fallback_mix(resolver, upstream):
    resolver.lookup_book(ISBN_A)
    upstream.failing.add(ISBN_B)

    batch = resolver.lookup_books([ISBN_A, ISBN_B])

    assert set(batch.results) == {ISBN_A, ISBN_B}
    assert batch.results[ISBN_A].source == "cache"
    assert batch.results[ISBN_B].source == "fallback"
    summary = batch.summary
    assert (summary.total, summary.successful, summary.failed) == (2, 2, 0)
    assert summary.cached == 1
    # The failed attempt for B ended in fallback, so it is not an API result
    assert summary.api_calls == 0
    assert batch.errors == []


def test_api_results_are_counted(resolver):
    batch = resolver.lookup_books([ISBN_A, ISBN_B])

    assert batch.summary.api_calls == 2
    assert batch.summary.cached == 0
    assert batch.summary.successful == 2


def test_duplicates_resolved_once_and_total_counts_distinct(resolver, upstream):
    batch = resolver.lookup_books([ISBN_A, "978-0-306-40615-7", ISBN_A, ISBN_B])

    assert list(batch.results) == [ISBN_A, ISBN_B]
    assert batch.summary.total == 2
    assert upstream.calls.count(ISBN_A) == 1


def test_invalid_entries_reported_by_position(resolver, upstream):
    batch = resolver.lookup_books(["bogus", ISBN_A, "123"])

    assert list(batch.results) == ["bogus", ISBN_A, "123"]
    assert batch.results["bogus"].source == "local"
    assert not batch.results["bogus"].success
    summary = batch.summary
    assert (summary.total, summary.successful, summary.failed) == (3, 1, 2)
    assert len(batch.errors) == 2
    assert batch.errors[0].startswith("[0] bogus: Invalid ISBN")
    assert batch.errors[1].startswith("[2] 123: Invalid ISBN")
    assert upstream.calls == [ISBN_A]


def test_failures_without_fallback_do_not_abort_batch():
    upstream = FakeUpstream({ISBN_A: make_book(ISBN_A)})
    upstream.failing.add(ISBN_B)
    resolver = IsbnResolver(
        upstream,
        config=ResilienceConfig(enable_fallback=False, enable_retry=False),
    )

    batch = resolver.lookup_books([ISBN_B, ISBN_A, ISBN_C])

    assert batch.results[ISBN_A].success
    assert not batch.results[ISBN_B].success
    assert not batch.results[ISBN_C].success
    assert batch.summary.failed == 2
    assert batch.summary.successful == 1
    assert batch.errors == [
        f"[0] {ISBN_B}: connection refused",
        f"[2] {ISBN_C}: No book found for ISBN {ISBN_C}",
    ]


def test_lookups_run_concurrently():
    barrier = threading.Barrier(2, timeout=5)

    class BlockingUpstream(FakeUpstream):
        def fetch_by_isbn(self, isbn):
            # Both lookups must be in flight at once to pass the barrier
            barrier.wait()
            return super().fetch_by_isbn(isbn)

    upstream = BlockingUpstream({ISBN_A: make_book(ISBN_A), ISBN_B: make_book(ISBN_B)})
    resolver = IsbnResolver(
        upstream, config=ResilienceConfig(batch_max_workers=2, enable_retry=False)
    )

    batch = resolver.lookup_books([ISBN_A, ISBN_B])

    assert batch.summary.api_calls == 2


def test_to_dict_is_plain_data(resolver):
    data = resolver.lookup_books([ISBN_A]).to_dict()

    assert data["summary"] == {
        "total": 1,
        "successful": 1,
        "failed": 0,
        "cached": 0,
        "api_calls": 1,
    }
    assert data["results"][ISBN_A]["book"]["title"] == "Dune"
    assert data["results"][ISBN_A]["book"]["authors"][0]["surname"] == "Herbert"


def test_breaker_rejections_are_not_counted_as_api_calls():
    upstream = FakeUpstream({ISBN_A: make_book(ISBN_A)})
    upstream.failing.add(ISBN_B)
    resolver = IsbnResolver(
        upstream,
        config=ResilienceConfig(
            failure_threshold=1, enable_fallback=False, enable_retry=False
        ),
    )
    resolver.lookup_book(ISBN_B)
    calls_before = len(upstream.calls)

    batch = resolver.lookup_books([ISBN_A])

    assert len(upstream.calls) == calls_before
    assert batch.results[ISBN_A].source == "local"
    summary = batch.summary
    assert (summary.total, summary.failed, summary.api_calls) == (1, 1, 0)
