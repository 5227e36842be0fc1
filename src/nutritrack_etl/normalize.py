"""Normalization functions for nutrition CSV ingestion.

All functions accept str | None and return the appropriate type or None.
"""

from __future__ import annotations

import math

MALE = "male"
FEMALE = "female"


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: parse_float
# ---------------------------------------------------------------------------

def parse_float(value: str | None) -> float | None:
    """Parse a float from a string, returning None on failure.

    NaN and infinities are rejected: they cannot be averaged or compared
    meaningfully downstream.
    """
    v = trim(value)
    if v is None:
        return None
    try:
        parsed = float(v)
    except ValueError:
        return None
    if math.isnan(parsed) or math.isinf(parsed):
        return None
    return parsed


# ---------------------------------------------------------------------------
# Rule 3: sex comparison (case-insensitive everywhere)
# ---------------------------------------------------------------------------

def normalize_sex(value: str | None) -> str | None:
    """Return 'male' / 'female' for recognised values, else None."""
    v = trim(value)
    if v is None:
        return None
    folded = v.casefold()
    if folded in (MALE, FEMALE):
        return folded
    return None


def is_male(value: str | None) -> bool:
    return normalize_sex(value) == MALE
