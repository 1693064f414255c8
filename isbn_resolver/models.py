"""Data shapes shared by the resolution engine.

Every lookup outcome, whatever layer produced it, is a ``LookupResult``.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

SOURCE_CACHE = "cache"
SOURCE_API = "api"
SOURCE_FALLBACK = "fallback"
SOURCE_LOCAL = "local"

CONFIDENCE_LEVELS = ("high", "medium", "low")


@dataclass(frozen=True)
class AuthorRef:
    name: str
    surname: str
    full_name: str
    nationality: Optional[str] = None


@dataclass(frozen=True)
class CategoryRef:
    name: str
    type: str = "subject"


@dataclass
class BookRecord:
    """Book metadata resolved for a single ISBN."""

    isbn_code: str
    title: str
    subtitle: Optional[str] = None
    authors: List[AuthorRef] = field(default_factory=list)
    categories: List[CategoryRef] = field(default_factory=list)
    edition_number: Optional[str] = None
    edition_date: Optional[str] = None
    publication_year: Optional[int] = None
    publishers: Optional[List[str]] = None
    pages: Optional[int] = None
    language: Optional[str] = None
    description: Optional[str] = None
    cover_urls: Optional[Dict[str, str]] = None
    physical_format: Optional[str] = None
    weight: Optional[str] = None
    dimensions: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LookupResult:
    """Outcome of resolving one ISBN.

    ``success`` is True exactly when ``book`` is present. ``source`` is always
    set, even for failures, so callers can tell "not found" from "degraded".
    """

    success: bool
    isbn: str
    source: str
    book: Optional[BookRecord] = None
    error: Optional[str] = None
    response_time: Optional[float] = None

    def __post_init__(self) -> None:
        if self.success != (self.book is not None):
            raise ValueError("LookupResult.success must be True exactly when book is set")

    @classmethod
    def found(
        cls,
        isbn: str,
        book: BookRecord,
        source: str,
        response_time: Optional[float] = None,
    ) -> "LookupResult":
        return cls(
            success=True,
            isbn=isbn,
            source=source,
            book=book,
            response_time=response_time,
        )

    @classmethod
    def failed(
        cls,
        isbn: str,
        error: str,
        source: str,
        response_time: Optional[float] = None,
    ) -> "LookupResult":
        return cls(
            success=False,
            isbn=isbn,
            source=source,
            error=error,
            response_time=response_time,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "isbn": self.isbn,
            "book": self.book.to_dict() if self.book else None,
            "error": self.error,
            "source": self.source,
            "response_time": self.response_time,
        }


@dataclass
class FallbackEntry:
    """Curated fallback data for one ISBN."""

    isbn: str
    title: str
    source: Optional[str] = None
    confidence: Optional[str] = None


@dataclass
class BatchSummary:
    total: int = 0
    successful: int = 0
    failed: int = 0
    cached: int = 0
    api_calls: int = 0


@dataclass
class BatchResult:
    results: Dict[str, LookupResult] = field(default_factory=dict)
    summary: BatchSummary = field(default_factory=BatchSummary)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": {isbn: r.to_dict() for isbn, r in self.results.items()},
            "summary": asdict(self.summary),
            "errors": list(self.errors),
        }


@dataclass
class SearchResult:
    success: bool
    books: List[BookRecord] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error}
        return {"success": True, "books": [b.to_dict() for b in self.books]}
