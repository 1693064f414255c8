from .authors import author_ref_from_name
from .books import IsbnValidation, normalize_isbn, validate_isbn

__all__ = ["IsbnValidation", "author_ref_from_name", "normalize_isbn", "validate_isbn"]
