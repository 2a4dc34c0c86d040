"""Text normalization for spreadsheet cells and field comparison."""
from __future__ import annotations

import re
import unicodedata

import pandas as pd


def normalize_whitespace(text: str) -> str:
    """Normalize whitespace: collapse multiple spaces, remove leading/trailing."""
    text = re.sub(r'\s+', ' ', text)
    return text.strip()


def clean_cell(value: object) -> str:
    """Turn a raw spreadsheet cell into trimmed text ('' for blanks)."""
    if value is None:
        return ""
    if isinstance(value, float) and pd.isna(value):
        return ""
    text = unicodedata.normalize('NFC', str(value))
    return normalize_whitespace(text)


def normalize_for_comparison(value: str | None) -> str:
    """Case-insensitive, whitespace-normalized form used for field equality."""
    if not value:
        return ""
    text = unicodedata.normalize('NFC', value)
    return normalize_whitespace(text).casefold()


# Full calendar dates only, optionally with the midnight time Excel adds.
# Partial dates ('1990') and slash forms ('05/06/1990') are ambiguous and
# are kept as typed.
_ISO_DATE = re.compile(r'^\d{4}-\d{2}-\d{2}(?:[ T]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?)?$')


def normalize_date(value: str) -> str:
    """Return an ISO date (YYYY-MM-DD) for unambiguous input, else the input.

    Excel dates read as text arrive as '1990-05-17 00:00:00'.
    """
    if not value or not _ISO_DATE.match(value):
        return value
    parsed = pd.to_datetime(value, format="ISO8601", errors="coerce")
    if pd.isna(parsed):
        return value
    return parsed.date().isoformat()
