"""Utilities for turning author name strings into structured references."""

from typing import Optional

from isbn_resolver.models import AuthorRef


def author_ref_from_name(
    full_name: Optional[str], nationality: Optional[str] = None
) -> AuthorRef:
    """Split a display name into given name(s) and surname.

    Handles:
    - "First Last" and "First Middle Last" (everything before the final token
      is the given name)
    - "Last, First" (a single comma flips the order)
    - Single-token names such as "Voltaire" (the token becomes the surname)

    Args:
        full_name: The name as published by the metadata source.
        nationality: Optional nationality to carry on the reference.

    Returns:
        AuthorRef with name, surname and a normalised full name.
    """
    clean = " ".join((full_name or "").split())
    if not clean:
        return AuthorRef(
            name="Unknown",
            surname="Author",
            full_name="Unknown Author",
            nationality=nationality,
        )

    # Likely "Last, First"
    if clean.count(",") == 1:
        surname, given = [p.strip() for p in clean.split(",")]
        if surname and given:
            return AuthorRef(
                name=given,
                surname=surname,
                full_name=f"{given} {surname}",
                nationality=nationality,
            )
        clean = (surname or given).strip()

    parts = clean.split(" ")
    if len(parts) == 1:
        return AuthorRef(
            name="", surname=parts[0], full_name=parts[0], nationality=nationality
        )

    return AuthorRef(
        name=" ".join(parts[:-1]),
        surname=parts[-1],
        full_name=clean,
        nationality=nationality,
    )
