"""Title cleaning, normalization and season detection."""

import re
from typing import Optional

ROMAN_NUMERALS = {
    "I": 1, "II": 2, "III": 3, "IV": 4, "V": 5,
    "VI": 6, "VII": 7, "VIII": 8, "IX": 9, "X": 10,
}

# Checked in order, first hit wins
SEASON_PATTERNS = [
    re.compile(r"(?i)\b(?:Season|S)\s*(\d+)\b"),
    re.compile(r"(?i)\b(\d+)(?:st|nd|rd|th)\s+Season\b"),
    re.compile(r"(?i)\bPart\s+(\d+|I{1,3}V?|VI{0,3})\b"),
    re.compile(r"(?i)\bCour\s+(\d+)\b"),
    re.compile(r"\b(I{2,3}V?|VI{0,3})\s*$"),
]

# Suffixes removed when building a comparison key, applied in order
NORMALIZE_PATTERNS = [
    re.compile(r"(?i)\s*\d+(?:st|nd|rd|th)\s+Season\s*$"),
    re.compile(r"(?i)\s*(?:Season|S)\s*\d+\s*$"),
    re.compile(r"(?i)\s*Part\s+(?:\d+|I{1,3}V?|VI{0,3})\s*$"),
    re.compile(r"(?i)\s*Cour\s+\d+\s*$"),
    re.compile(r"\s+(?:I{2,3}V?|VI{0,3})\s*$"),
    re.compile(r"\s*\(\d{4}\)\s*$"),
    re.compile(r"\s*[:–—-]\s*$"),
]

_SEPARATOR_RUN = re.compile(r"[\s_]+")
_WHITESPACE_RUN = re.compile(r"\s+")


def roman_to_int(value: str) -> Optional[int]:
    """Convert a roman numeral between I and X."""
    return ROMAN_NUMERALS.get(value.upper())


def detect_season_from_title(title: str) -> Optional[int]:
    """Detect a season number embedded in a series title.

    Recognizes "Season 2" / "S2", "2nd Season", "Part 2" / "Part II",
    "Cour 2" and a trailing roman numeral ("Re Zero II").
    """
    for pattern in SEASON_PATTERNS:
        match = pattern.search(title)
        if not match:
            continue
        value = match.group(1)
        if value.isdigit():
            return int(value)
        numeral = roman_to_int(value)
        if numeral is not None:
            return numeral
    return None


def _clean_once(title: str) -> str:
    title = title.strip().rstrip("-_").strip()

    # Drop a trailing "(2023)" style year
    open_idx = title.rfind("(")
    close_idx = title.rfind(")")
    if open_idx != -1 and close_idx > open_idx:
        inside = title[open_idx + 1:close_idx]
        if len(inside) == 4 and inside.isascii() and inside.isdigit():
            title = title[:open_idx].strip()

    return _SEPARATOR_RUN.sub(" ", title).strip()


def clean_title(title: str) -> str:
    """Trim separators, drop a year parenthetical and collapse whitespace/underscores."""
    previous = None
    while title != previous:
        previous = title
        title = _clean_once(title)
    return title


def normalize_title(title: str) -> str:
    """Strip season, part, cour and year suffixes for comparison."""
    result = clean_title(title)
    previous = None
    while result != previous:
        previous = result
        for pattern in NORMALIZE_PATTERNS:
            result = pattern.sub("", result)
        result = _WHITESPACE_RUN.sub(" ", result).strip()
    return result


def _matching_key(title: str) -> str:
    lowered = normalize_title(title).lower()
    kept = "".join(c for c in lowered if c.isalnum() or c.isspace())
    return " ".join(kept.split())


def normalize_for_matching(title: str) -> str:
    """Lowercase alphanumeric key used only for equality and containment checks."""
    key = _matching_key(title)
    previous = None
    while key != previous:
        previous = key
        key = _matching_key(key)
    return key
