import json
import logging
import os
import sys
from typing import Any, Tuple

import click
from dotenv import load_dotenv

from isbn_resolver.services.resolver import get_resolver
from isbn_resolver.errors import InvalidIsbnError
from isbn_resolver.utils.books import (
    ISBN_FORMATS,
    format_isbn,
    isbn10_to_isbn13,
    validate_isbn,
)


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """Administrative commands for the ISBN resolver."""
    load_dotenv()
    level = "DEBUG" if verbose else os.environ.get("ISBN_RESOLVER_LOG_LEVEL", "WARNING")
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@cli.command("lookup")
@click.argument("isbn")
def lookup(isbn: str) -> None:
    """Resolve a single ISBN."""
    result = get_resolver().lookup_book(isbn)
    _echo_json(result.to_dict())
    if not result.success:
        sys.exit(1)


@cli.command("batch")
@click.argument("isbns", nargs=-1, required=True)
def batch(isbns: Tuple[str, ...]) -> None:
    """Resolve several ISBNs at once."""
    result = get_resolver().lookup_books(list(isbns))
    _echo_json(result.to_dict())
    if result.summary.failed:
        sys.exit(1)


@cli.command("search")
@click.argument("title")
@click.option("--limit", default=10, show_default=True, type=click.IntRange(1, 100))
def search(title: str, limit: int) -> None:
    """Search the upstream service by title (uncached)."""
    result = get_resolver().search_by_title(title, limit)
    _echo_json(result.to_dict())
    if not result.success:
        sys.exit(1)


@cli.command("health")
def health() -> None:
    """Probe the upstream service."""
    report = get_resolver().check_service_health()
    report["status"] = "healthy" if report["available"] else "unhealthy"
    _echo_json(report)
    if not report["available"]:
        sys.exit(1)


@cli.command("stats")
def stats() -> None:
    """Show circuit breaker, fallback, cache and config state."""
    _echo_json(get_resolver().get_resilience_stats())


@cli.command("add-fallback")
@click.argument("isbn")
@click.argument("title")
def add_fallback(isbn: str, title: str) -> None:
    """Register curated fallback data for an ISBN."""
    if get_resolver().add_fallback_book(isbn, title):
        click.echo(f"Fallback book {isbn} added.")
        return
    click.echo("Failed to add fallback book.", err=True)
    sys.exit(1)


@cli.command("validate")
@click.argument("isbn")
def validate(isbn: str) -> None:
    """Check an ISBN's format and checksum."""
    validation = validate_isbn(isbn)
    normalized = validation.normalized_isbn
    report = {
        "original_isbn": isbn,
        "is_valid": validation.is_valid,
        "normalized_isbn": normalized,
        "error": validation.error,
        "format": (
            ("ISBN-10" if len(normalized) == 10 else "ISBN-13") if normalized else None
        ),
        "isbn13": (
            isbn10_to_isbn13(normalized)
            if normalized and len(normalized) == 10
            else normalized
        ),
    }
    _echo_json(report)
    if not validation.is_valid:
        sys.exit(1)


@cli.command("format")
@click.argument("isbn")
@click.option(
    "--format",
    "fmt",
    default="hyphenated",
    show_default=True,
    type=click.Choice(ISBN_FORMATS),
)
def format_command(isbn: str, fmt: str) -> None:
    """Print an ISBN in another format."""
    try:
        formatted = format_isbn(isbn, fmt)
    except InvalidIsbnError as e:
        click.echo(str(e), err=True)
        sys.exit(1)
    _echo_json(
        {
            "original_isbn": isbn,
            "normalized_isbn": validate_isbn(isbn).normalized_isbn,
            "formatted_isbn": formatted,
            "format": fmt,
        }
    )


if __name__ == "__main__":
    cli()
