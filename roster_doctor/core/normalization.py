from __future__ import annotations

import re
import unicodedata

# Zero-width space/non-joiner/joiner, word joiner, BOM
INVISIBLE_CHARS_RE = re.compile("[\\u200b-\\u200d\\u2060\\ufeff]")
WHITESPACE_RE = re.compile(r"\s+")


def normalize_key(value: object) -> str:
    """Canonical text for comparing spreadsheet keys.

    Strips zero-width/BOM characters, applies NFKC width folding and trims
    surrounding whitespace. Idempotent.
    """
    if value is None:
        return ""
    text = INVISIBLE_CHARS_RE.sub("", str(value))
    text = unicodedata.normalize("NFKC", text)
    return INVISIBLE_CHARS_RE.sub("", text).strip()


def strip_whitespace(value: object) -> str:
    if value is None:
        return ""
    return WHITESPACE_RE.sub("", str(value))


def was_cleaned(raw: object, cleaned: str) -> bool:
    """True when normalization changed more than the whitespace of `raw`."""
    if raw is None or str(raw) == "":
        return False
    return strip_whitespace(raw) != strip_whitespace(cleaned)


def cell_text(row: list, index: int | None) -> str:
    if index is None or index < 0 or index >= len(row):
        return ""
    value = row[index]
    return "" if value is None else str(value)
