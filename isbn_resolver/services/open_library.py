import html
import logging
import re
import threading
import time
from typing import Any, Dict, List, Optional

import requests

from isbn_resolver.errors import BookNotFoundError, UpstreamError
from isbn_resolver.models import BookRecord, CategoryRef
from isbn_resolver.utils.authors import author_ref_from_name
from isbn_resolver.utils.books import parse_publication_year

logger = logging.getLogger("isbn_resolver.open_library")

OPEN_LIBRARY_API = "https://openlibrary.org/api/books"
OPEN_LIBRARY_SEARCH_API = "https://openlibrary.org/search.json"
COVERS_URL = "https://covers.openlibrary.org/b/id/{cover_id}-{size}.jpg"

SEARCH_FIELDS = (
    "key,title,subtitle,author_name,cover_i,first_publish_year,"
    "isbn,publisher,subject,language,number_of_pages_median"
)


def make_session() -> requests.Session:
    """Create a requests session with a proper User-Agent.

    Open Library triples its rate limit (100 -> 300 req/5 min) when a
    User-Agent header is provided. A session also reuses TCP connections.
    """
    session = requests.Session()
    session.headers.update(
        {
            "User-Agent": "isbn-resolver/1.0 (personal library tracker)",
            "Accept": "application/json",
        }
    )
    return session


def _unescape(value: Optional[str]) -> Optional[str]:
    return html.unescape(value) if value else value


def _text(value: Any) -> Optional[str]:
    """Open Library sometimes wraps text as {"type": ..., "value": ...}."""
    if isinstance(value, dict):
        value = value.get("value")
    if not value:
        return None
    return _unescape(str(value))


def _names(items: Any) -> List[str]:
    if not isinstance(items, list):
        return []
    names = []
    for item in items:
        name = item.get("name") if isinstance(item, dict) else item
        if name:
            names.append(html.unescape(str(name)))
    return names


def parse_open_library_data(isbn: str, data: Dict[str, Any]) -> BookRecord:
    """Build a BookRecord from one entry of the Open Library Books API."""
    title = _unescape(data.get("title")) or f"Book {isbn}"

    authors = [author_ref_from_name(name) for name in _names(data.get("authors"))]

    categories = [CategoryRef(name=name) for name in _names(data.get("subjects"))]
    classifications = data.get("classifications") or {}
    for dewey in classifications.get("dewey_decimal_class") or []:
        categories.append(CategoryRef(name=str(dewey), type="dewey"))

    publishers = _names(data.get("publishers")) or None

    languages = data.get("languages") or []
    language = None
    if languages and isinstance(languages, list):
        first = languages[0]
        if isinstance(first, dict):
            language = first.get("name") or first.get("key")
        else:
            language = str(first)

    cover_urls = None
    cover = data.get("cover") or {}
    if isinstance(cover, dict) and cover:
        cover_urls = {
            k: v for k, v in cover.items() if k in ("small", "medium", "large") and v
        }

    pages = data.get("number_of_pages")
    try:
        pages = int(pages) if pages is not None else None
    except (TypeError, ValueError):
        pages = None

    return BookRecord(
        isbn_code=isbn,
        title=title,
        subtitle=_unescape(data.get("subtitle")),
        authors=authors,
        categories=categories,
        edition_number=_unescape(data.get("edition_name")),
        edition_date=data.get("publish_date"),
        publication_year=parse_publication_year(data.get("publish_date")),
        publishers=publishers,
        pages=pages,
        language=language,
        description=_text(data.get("notes")) or _text(data.get("description")),
        cover_urls=cover_urls or None,
        physical_format=data.get("physical_format"),
        weight=data.get("weight"),
        dimensions=data.get("physical_dimensions"),
    )


def _preferred_isbn(candidates: List[str]) -> Optional[str]:
    """Prefer an ISBN-13 (13 digits), otherwise take an ISBN-10."""
    fallback = None
    for candidate in candidates:
        clean = re.sub(r"[\s-]", "", str(candidate)).upper()
        if len(clean) == 13 and clean.isdigit():
            return clean
        if fallback is None and len(clean) == 10 and clean[:9].isdigit():
            fallback = clean
    return fallback


def parse_search_doc(doc: Dict[str, Any]) -> Optional[BookRecord]:
    """Build a BookRecord from an Open Library search document, if it has an ISBN."""
    isbn = _preferred_isbn(doc.get("isbn") or [])
    title = doc.get("title")
    if not isbn or not title:
        return None

    cover_urls = None
    cover_id = doc.get("cover_i")
    if cover_id:
        cover_urls = {
            "small": COVERS_URL.format(cover_id=cover_id, size="S"),
            "medium": COVERS_URL.format(cover_id=cover_id, size="M"),
            "large": COVERS_URL.format(cover_id=cover_id, size="L"),
        }

    year = doc.get("first_publish_year")
    languages = doc.get("language") or []
    return BookRecord(
        isbn_code=isbn,
        title=html.unescape(title.strip()),
        subtitle=_unescape(doc.get("subtitle")),
        authors=[author_ref_from_name(n) for n in doc.get("author_name") or []],
        categories=[CategoryRef(name=s) for s in (doc.get("subject") or [])[:10]],
        edition_date=str(year) if year else None,
        publication_year=parse_publication_year(str(year)) if year else None,
        publishers=(doc.get("publisher") or [])[:3] or None,
        pages=doc.get("number_of_pages_median"),
        language=languages[0] if languages else None,
        cover_urls=cover_urls,
    )


class OpenLibraryClient:
    """Upstream metadata client backed by the Open Library APIs.

    Raises BookNotFoundError when Open Library answers without the ISBN and
    UpstreamError for timeouts, connection problems and bad responses.
    """

    def __init__(
        self, session: Optional[requests.Session] = None, timeout: float = 10.0
    ) -> None:
        self.session = session or make_session()
        self.timeout = timeout
        # Timings are kept per thread
        self._local = threading.local()

    @property
    def response_time(self) -> Optional[float]:
        """Seconds taken by the last call made from the current thread."""
        return getattr(self._local, "response_time", None)

    def _get_json(self, url: str, params: Dict[str, str]) -> Any:
        start = time.monotonic()
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.Timeout as e:
            raise UpstreamError(f"Open Library timed out after {self.timeout}s") from e
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else "?"
            raise UpstreamError(f"Open Library returned HTTP {status}") from e
        except (requests.RequestException, ValueError) as e:
            raise UpstreamError(f"Open Library request failed: {e}") from e
        finally:
            self._local.response_time = time.monotonic() - start

    def fetch_by_isbn(self, isbn: str) -> BookRecord:
        params: Dict[str, str] = {
            "bibkeys": f"ISBN:{isbn}",
            "format": "json",
            "jscmd": "data",
        }
        payload = self._get_json(OPEN_LIBRARY_API, params)
        if not isinstance(payload, dict):
            raise UpstreamError("Open Library returned an unexpected payload")

        key = f"ISBN:{isbn}"
        if key not in payload:
            logger.debug(f"Open Library has no data for {isbn}")
            raise BookNotFoundError(f"No book found for ISBN {isbn}")

        book = parse_open_library_data(isbn, payload[key])
        logger.debug(f"Open Library returned data for {isbn} in {self.response_time:.3f}s")
        return book

    def search_by_title(self, title: str, limit: int = 10) -> List[BookRecord]:
        params: Dict[str, str] = {
            "title": title.strip(),
            "limit": str(max(1, min(int(limit), 100))),
            "fields": SEARCH_FIELDS,
        }
        payload = self._get_json(OPEN_LIBRARY_SEARCH_API, params)
        docs = (payload.get("docs") or []) if isinstance(payload, dict) else []

        books: List[BookRecord] = []
        for doc in docs:
            book = parse_search_doc(doc)
            if book is not None:
                books.append(book)
            if len(books) >= limit:
                break
        logger.debug(f"Open Library title search for '{title}' returned {len(books)} books")
        return books
