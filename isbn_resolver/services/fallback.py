"""Fallback data for when the upstream metadata service cannot be used.

Curated entries cover a handful of well-known titles. Any other ISBN gets a
minimal synthetic record so a user can still record that they own the book.
"""

import logging
import threading
from typing import Any, Callable, Dict, Optional

from isbn_resolver.errors import ConfigurationError
from isbn_resolver.models import (
    CONFIDENCE_LEVELS,
    SOURCE_FALLBACK,
    AuthorRef,
    BookRecord,
    CategoryRef,
    FallbackEntry,
    LookupResult,
)
from isbn_resolver.utils.books import IsbnValidation, validate_isbn

logger = logging.getLogger("isbn_resolver.fallback")

DEFAULT_ENTRIES = (
    FallbackEntry("9780451524935", "1984", source="curated", confidence="high"),
    FallbackEntry(
        "9780486284736", "Pride and Prejudice", source="curated", confidence="high"
    ),
    FallbackEntry(
        "9780060883287",
        "One Hundred Years of Solitude",
        source="curated",
        confidence="high",
    ),
)


def _unknown_author() -> AuthorRef:
    return AuthorRef(name="Unknown", surname="Author", full_name="Unknown Author")


class FallbackProvider:
    def __init__(
        self, validator: Callable[[str], IsbnValidation] = validate_isbn
    ) -> None:
        self._validator = validator
        self._entries: Dict[str, FallbackEntry] = {}
        self._lock = threading.Lock()
        self._seed()

    def _seed(self) -> None:
        # Caller holds the lock or is the constructor
        self._entries = {e.isbn: e for e in DEFAULT_ENTRIES}

    def lookup(self, isbn: str) -> LookupResult:
        """Return curated data for ``isbn`` or a synthesized minimal record.

        The ISBN is treated as already validated, so this always succeeds.
        """
        with self._lock:
            entry = self._entries.get(isbn)
        if entry is not None:
            logger.debug(f"Serving curated fallback data for ISBN {isbn}")
            book = self._render(entry)
        else:
            logger.debug(f"Generating minimal fallback record for ISBN {isbn}")
            book = self._minimal_record(isbn)
        return LookupResult.found(isbn, book, SOURCE_FALLBACK)

    def add_entry(self, isbn: str, data: Optional[Dict[str, Any]] = None) -> bool:
        """Store or overwrite curated data for an ISBN.

        Missing fields are defaulted; the title becomes "Book <isbn>".
        Returns False if the ISBN or the data is rejected.
        """
        validation = self._validator(isbn)
        if not validation.is_valid or not validation.normalized_isbn:
            logger.warning(f"Rejected fallback entry for invalid ISBN {isbn!r}")
            return False
        normalized = validation.normalized_isbn

        try:
            entry = self._build_entry(normalized, data or {})
        except ConfigurationError as e:
            logger.warning(f"Rejected fallback entry for ISBN {normalized}: {e}")
            return False

        with self._lock:
            self._entries[normalized] = entry
        logger.info(f"Added fallback entry for ISBN {normalized}: {entry.title}")
        return True

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "static_data_count": len(self._entries),
                "available_isbns": sorted(self._entries),
            }

    def clear(self) -> None:
        """Discard all entries and reseed the built-in defaults."""
        with self._lock:
            self._seed()
        logger.info("Fallback data reset to built-in defaults")

    @staticmethod
    def _build_entry(isbn: str, data: Dict[str, Any]) -> FallbackEntry:
        title = data.get("title")
        if title is not None and not isinstance(title, str):
            raise ConfigurationError("title must be a string")
        title = (title or "").strip() or f"Book {isbn}"

        confidence = data.get("confidence")
        if confidence is not None and confidence not in CONFIDENCE_LEVELS:
            raise ConfigurationError(
                f"confidence must be one of {', '.join(CONFIDENCE_LEVELS)}"
            )

        source = data.get("source")
        return FallbackEntry(
            isbn=isbn,
            title=title,
            source=str(source) if source else None,
            confidence=confidence,
        )

    @staticmethod
    def _render(entry: FallbackEntry) -> BookRecord:
        description = None
        if entry.source and entry.confidence:
            description = (
                f"Book information from {entry.source} source "
                f"({entry.confidence} confidence)"
            )
        return BookRecord(
            isbn_code=entry.isbn,
            title=entry.title,
            authors=[_unknown_author()],
            categories=[CategoryRef(name="General", type="subject")],
            description=description,
        )

    @staticmethod
    def _minimal_record(isbn: str) -> BookRecord:
        return BookRecord(
            isbn_code=isbn,
            title=f"Book {isbn[-4:]}",
            authors=[_unknown_author()],
            categories=[CategoryRef(name="Unknown", type="subject")],
        )
