"""Text normalization shared by duplicate detection and the catalog tables."""

import re
import unicodedata

_STRIP_PATTERN = re.compile(r"[^\u0600-\u06ffa-z0-9\s]")
_SPACE_PATTERN = re.compile(r"\s+")


def normalize_text(value: str) -> str:
    """
    Normalize text for comparison.

    Decomposes and drops diacritics, lower-cases, removes everything
    except a-z, digits, Arabic letters and whitespace, and collapses
    whitespace.
    """
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    cleaned = _STRIP_PATTERN.sub("", stripped.lower())
    return _SPACE_PATTERN.sub(" ", cleaned).strip()
