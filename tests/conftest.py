import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Ensure the project root is importable when pytest changes CWD
PROJECT_ROOT = str(Path(__file__).resolve().parents[1])
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from isbn_resolver.config import ResilienceConfig  # noqa: E402
from isbn_resolver.errors import BookNotFoundError, UpstreamError  # noqa: E402
from isbn_resolver.models import AuthorRef, BookRecord, CategoryRef  # noqa: E402
from isbn_resolver.services.cache import LookupCache  # noqa: E402
from isbn_resolver.services.circuit_breaker import CircuitBreaker  # noqa: E402
from isbn_resolver.services.resolver import IsbnResolver  # noqa: E402

# Checksum-valid ISBN-13s used across the tests
ISBN_A = "9780306406157"
ISBN_B = "9781234567897"
ISBN_C = "9780140449136"
ISBN_D = "9780000000002"
ISBN_E = "9780000000019"


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUpstream:
    """Stand-in for the upstream metadata client.

    ``books`` maps ISBN -> BookRecord; ISBNs in ``failing`` raise UpstreamError,
    anything else raises BookNotFoundError.
    """

    def __init__(self, books: Optional[Dict[str, BookRecord]] = None) -> None:
        self.books = dict(books or {})
        self.failing: set = set()
        self.down = False
        self.calls: List[str] = []
        self.search_results: List[BookRecord] = []
        self.search_calls: List[tuple] = []

    def fetch_by_isbn(self, isbn: str) -> BookRecord:
        self.calls.append(isbn)
        if self.down or isbn in self.failing:
            raise UpstreamError("connection refused")
        if isbn not in self.books:
            raise BookNotFoundError(f"No book found for ISBN {isbn}")
        return self.books[isbn]

    def search_by_title(self, title: str, limit: int) -> List[BookRecord]:
        self.search_calls.append((title, limit))
        if self.down:
            raise UpstreamError("connection refused")
        return self.search_results[:limit]


def make_book(isbn: str, title: str = "Dune") -> BookRecord:
    return BookRecord(
        isbn_code=isbn,
        title=title,
        authors=[AuthorRef(name="Frank", surname="Herbert", full_name="Frank Herbert")],
        categories=[CategoryRef(name="Science fiction")],
        publishers=["Chilton Books"],
        pages=412,
    )


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def upstream():
    return FakeUpstream({ISBN_A: make_book(ISBN_A), ISBN_B: make_book(ISBN_B, "Emma")})


@pytest.fixture()
def config():
    return ResilienceConfig(
        failure_threshold=3,
        recovery_timeout=30.0,
        cache_max_size=10,
        enable_retry=False,
    )


@pytest.fixture()
def resolver(upstream, config, clock):
    breaker = CircuitBreaker(
        failure_threshold=config.failure_threshold,
        recovery_timeout=config.recovery_timeout,
        half_open_max_calls=config.half_open_max_calls,
        clock=clock,
    )
    cache = LookupCache(max_size=config.cache_max_size, clock=clock)
    return IsbnResolver(upstream, config=config, cache=cache, breaker=breaker)
