import re
from dataclasses import dataclass
from typing import Optional

from isbn_resolver.errors import InvalidIsbnError

ISBN_FORMATS = ("hyphenated", "clean", "isbn10", "isbn13")


@dataclass(frozen=True)
class IsbnValidation:
    """Outcome of validating a raw ISBN string."""

    is_valid: bool
    normalized_isbn: Optional[str] = None
    error: Optional[str] = None


def normalize_isbn(isbn: str) -> str:
    """Remove hyphens and other non-digit characters from ISBN, preserving final 'X'."""
    if not isbn:
        return ""
    # Remove hyphens and spaces
    clean = re.sub(r"[\s-]", "", str(isbn))
    # Preserve final X/x, remove all other non-digits
    has_x = clean.lower().endswith("x")
    digits = re.sub(r"\D", "", clean)
    if has_x:
        return digits + "X"
    return digits


def is_valid_isbn13(isbn: str) -> bool:
    """
    Validate ISBN-13 using checksum algorithm and format constraints.
    Reference: https://en.wikipedia.org/wiki/ISBN#ISBN-13_check_digit_calculation
    """
    if len(isbn) != 13 or not isbn.isdigit():
        return False

    checksum = 0
    for index, char in enumerate(isbn[:12]):
        digit = int(char)
        weight = 1 if index % 2 == 0 else 3
        checksum += digit * weight

    check_digit = (10 - (checksum % 10)) % 10
    return check_digit == int(isbn[12])


def parse_publication_year(publish_date: Optional[str]) -> Optional[int]:
    """
    Extract a 4-digit year from various date string formats.
    Examples: '2023', 'May 2023', '2023-05-01', 'June 8, 1965'
    """
    if not publish_date:
        return None

    # Split by common delimiters and look for a 4-digit number
    for token in (
        publish_date.replace("-", " ").replace("/", " ").replace(",", " ").split()
    ):
        if len(token) == 4 and token.isdigit():
            return int(token)
    return None


def is_valid_isbn10(isbn: str) -> bool:
    """Validate ISBN-10 (weights 10..1, mod 11, 'X' only as the check character)."""
    if len(isbn) != 10 or not isbn[:9].isdigit():
        return False
    last = isbn[9]
    if not (last.isdigit() or last == "X"):
        return False

    total = 0
    for index, char in enumerate(isbn[:9]):
        total += int(char) * (10 - index)
    total += 10 if last == "X" else int(last)
    return total % 11 == 0


def validate_isbn(raw: Optional[str]) -> IsbnValidation:
    """Check format and checksum of a raw ISBN and return its normalized form.

    Accepts hyphenated or spaced input. The normalized value is a 10- or
    13-character string, upper-case 'X' allowed as the final ISBN-10 character.
    """
    if raw is None or not str(raw).strip():
        return IsbnValidation(False, error="ISBN is required")

    raw_str = str(raw).strip()
    if re.search(r"[^0-9xX\s-]", raw_str):
        return IsbnValidation(False, error="ISBN contains invalid characters")

    compact = re.sub(r"[\s-]", "", raw_str).upper()
    if "X" in compact[:-1]:
        return IsbnValidation(False, error="'X' is only allowed as the ISBN-10 check digit")

    clean = normalize_isbn(raw_str)

    if len(clean) == 10:
        if is_valid_isbn10(clean):
            return IsbnValidation(True, normalized_isbn=clean)
        return IsbnValidation(False, error="Invalid ISBN-10 checksum")

    if len(clean) == 13:
        if clean.endswith("X"):
            return IsbnValidation(False, error="ISBN-13 cannot end in 'X'")
        if not clean.startswith(("978", "979")):
            return IsbnValidation(False, error="ISBN-13 must start with 978 or 979")
        if is_valid_isbn13(clean):
            return IsbnValidation(True, normalized_isbn=clean)
        return IsbnValidation(False, error="Invalid ISBN-13 checksum")

    return IsbnValidation(
        False, error=f"ISBN must have 10 or 13 characters, got {len(clean)}"
    )


def isbn10_to_isbn13(isbn10: str) -> Optional[str]:
    """Convert ISBN-10 to ISBN-13.

    Calculates the checksum for the 978 prefix.
    """
    clean = normalize_isbn(isbn10)
    if len(clean) != 10:
        return None

    # Prefix with 978
    core = "978" + clean[:9]

    # Calculate ISBN-13 checksum
    checksum = 0
    for index, char in enumerate(core):
        digit = int(char)
        weight = 1 if index % 2 == 0 else 3
        checksum += digit * weight

    check_digit = (10 - (checksum % 10)) % 10
    return core + str(check_digit)


def isbn13_to_isbn10(isbn13: str) -> Optional[str]:
    """Convert ISBN-13 to ISBN-10 if possible.

    Only 978-prefixed ISBN-13s have an ISBN-10 equivalent.
    """
    clean = normalize_isbn(isbn13)
    if len(clean) != 13 or not clean.startswith("978"):
        return None

    # Take middle 9 digits
    core = clean[3:12]

    # Calculate ISBN-10 checksum
    total = 0
    for i, digit in enumerate(core):
        total += int(digit) * (10 - i)

    check_digit = (11 - total % 11) % 11
    return core + ("X" if check_digit == 10 else str(check_digit))


def format_isbn(raw: Optional[str], fmt: str = "hyphenated") -> str:
    """Render a valid ISBN in one of ISBN_FORMATS.

    Hyphenation is positional only: real group and publisher boundaries
    need the registration ranges. Raises InvalidIsbnError for invalid input
    or an ISBN-13 with no ISBN-10 form, ValueError for an unknown format.
    """
    if fmt not in ISBN_FORMATS:
        raise ValueError(f"Format must be one of: {', '.join(ISBN_FORMATS)}")

    validation = validate_isbn(raw)
    if not validation.is_valid or not validation.normalized_isbn:
        raise InvalidIsbnError(f"Invalid ISBN: {validation.error}")
    isbn = validation.normalized_isbn

    if fmt == "clean":
        return isbn
    if fmt == "isbn13":
        return isbn10_to_isbn13(isbn) if len(isbn) == 10 else isbn
    if fmt == "isbn10":
        if len(isbn) == 10:
            return isbn
        isbn10 = isbn13_to_isbn10(isbn)
        if isbn10 is None:
            raise InvalidIsbnError(f"Cannot convert {isbn} to ISBN-10 format")
        return isbn10

    if len(isbn) == 13:
        return f"{isbn[:3]}-{isbn[3]}-{isbn[4:6]}-{isbn[6:12]}-{isbn[12]}"
    return f"{isbn[0]}-{isbn[1:3]}-{isbn[3:9]}-{isbn[9]}"
