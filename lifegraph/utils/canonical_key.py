"""Shared helpers for canonical entity names and dedup keys.

The graph store and the extraction client both rely on these so that a name
coming out of an LLM response and a name typed into a lookup resolve to the
same stored entity.
"""

import re
import unicodedata
from typing import Optional

MAX_NAME_LENGTH = 255
MAX_SNIPPET_LENGTH = 500

_WHITESPACE_RE = re.compile(r"\s+")
# Quotes and trailing punctuation the model sometimes wraps names in
_EDGE_CHARS = "\"'`“”‘’.,;:!?"


def normalize_entity_name(name: Optional[str]) -> str:
    """Normalize a raw entity label into its canonical display form.

    Collapses internal whitespace, strips wrapping quotes and punctuation and
    clips the result to the column width. Casing is preserved so the first
    spelling the model produced stays the display label.

    Args:
        name: Raw name from an extraction or a lookup

    Returns:
        str: Normalized name, empty when nothing usable remains
    """
    if not name or not isinstance(name, str):
        return ""

    normalized = unicodedata.normalize("NFKC", name)
    normalized = _WHITESPACE_RE.sub(" ", normalized).strip().strip(_EDGE_CHARS).strip()
    return normalized[:MAX_NAME_LENGTH]


def generate_name_key(name: Optional[str]) -> str:
    """Generate the case-insensitive dedup key for an entity name.

    Args:
        name: Raw or already normalized entity name

    Returns:
        str: Case-folded normalized name ("" if the name is unusable)
    """
    # Case folding can lengthen the name ("ß" -> "ss")
    return normalize_entity_name(name).casefold()[:MAX_NAME_LENGTH]


def clip_snippet(text: Optional[str], limit: int = MAX_SNIPPET_LENGTH) -> Optional[str]:
    """Trim a free-text context snippet for storage."""
    if not text or not isinstance(text, str):
        return None
    snippet = _WHITESPACE_RE.sub(" ", text).strip()
    if not snippet:
        return None
    return snippet[:limit]
