"""
Folio - Text Utilities
=======================
Helper functions for text cleaning, slug building and the small
formatting primitives the ``ContentExtractor`` composes chunk bodies
from.

These utilities should remain stateless and side-effect-free.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable

# Control characters (C0/C1) except \n, \r, \t, plus BOM / zero-width
# characters / soft hyphens that sneak in from copy-pasted resume text.
_NON_PRINTABLE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufeff\u200b\u200c\u200d\u200e\u200f\u00ad\u2060\ufffe]")

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def clean_text(text: str) -> str:
    """
    Sanitise free text taken from a data file.

    Steps:
        1. Unicode NFC normalisation.
        2. Strip non-printable / zero-width characters.
        3. Collapse runs of horizontal whitespace into a single space,
           *preserving* newlines.
        4. Strip leading / trailing whitespace from every line.
        5. Collapse 3+ consecutive blank lines to 2.

    Args:
        text: Raw text extracted from a source file.

    Returns:
        Cleaned, normalised text.
    """
    text = unicodedata.normalize("NFC", text)
    text = _NON_PRINTABLE_RE.sub("", text)
    text = re.sub(r"[^\S\n]+", " ", text)
    lines = [line.strip() for line in text.splitlines()]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def to_kebab_case(value: str) -> str:
    """
    Lower-case *value* and join its alphanumeric runs with hyphens.

    Examples::

        "Senior Data Engineer" → "senior-data-engineer"
        "  Chewy, Inc. "       → "chewy-inc"
    """
    return _NON_ALNUM_RE.sub("-", value.lower()).strip("-")


def bullet_list(items: Iterable[str]) -> str:
    """Render *items* as ``- item`` lines, skipping blanks."""
    return "\n".join(f"- {clean_text(item)}" for item in items if item and item.strip())


def as_text(value: object) -> str:
    """Join a list of strings with spaces, or clean a single string."""
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return " ".join(clean_text(str(v)) for v in value if v)
    return clean_text(str(value))
