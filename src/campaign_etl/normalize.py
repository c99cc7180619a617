"""Normalization functions for campaign CSV ingestion.

All functions accept str | None and return the appropriate type or None.
None always means "missing or unparseable"; callers decide whether that is
a violation.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

_ISO_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")
_CAMPAIGN_ID_RE = re.compile(r"[A-Za-z0-9_-]+")
_NON_DIGIT_RE = re.compile(r"\D")
_WHITESPACE_RE = re.compile(r"\s")
_PLAIN_NUMBER_RE = re.compile(r"[+-]?(\d+(\.\d*)?|\.\d+)")

CENTS = Decimal("0.01")
# column limits: bigint and numeric(14, 2)
COUNT_MAX = 2**63 - 1
MONEY_MAX = Decimal("999999999999.99")


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
# Rule 2: normalize_space
# ---------------------------------------------------------------------------

def normalize_space(value: str | None) -> str | None:
    """Collapse internal runs of whitespace to single spaces, then trim."""
    v = trim(value)
    if v is None:
        return None
    return re.sub(r"\s+", " ", v)


# ---------------------------------------------------------------------------
# Rule 3: parse_iso_date
# ---------------------------------------------------------------------------

def parse_iso_date(value: str | None) -> date | None:
    """Parse 'YYYY-MM-DD' into a real calendar date.

    '2024-02-30' matches the pattern but is not a date → None.
    """
    v = trim(value)
    if v is None or not _ISO_DATE_RE.fullmatch(v):
        return None
    try:
        return datetime.strptime(v, "%Y-%m-%d").date()
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Rule 4: is_valid_campaign_id
# ---------------------------------------------------------------------------

def is_valid_campaign_id(value: str | None) -> bool:
    v = trim(value)
    return v is not None and _CAMPAIGN_ID_RE.fullmatch(v) is not None


# ---------------------------------------------------------------------------
# Rule 5: parse_count
# ---------------------------------------------------------------------------

def parse_count(value: str | None) -> int | None:
    """Parse a non-negative integer count after dropping every non-digit.

    '12,345' → 12345, '1 000' → 1000.  Nothing left after stripping → None.
    A leading '-' is a non-digit too, so counts are never negative.
    Counts above COUNT_MAX (Postgres bigint) → None.
    """
    if value is None:
        return None
    digits = _NON_DIGIT_RE.sub("", value)
    if not digits:
        return None
    significant = digits.lstrip("0")
    # length first: int() refuses very long digit strings
    if len(significant) > len(str(COUNT_MAX)):
        return None
    count = int(significant or "0")
    return count if count <= COUNT_MAX else None


# ---------------------------------------------------------------------------
# Rule 6: normalize_number
# ---------------------------------------------------------------------------

def normalize_number(value: str | None) -> Decimal | None:
    """Parse a locale-ambiguous decimal string.

    Whitespace is removed first.  A comma with no dot is the decimal
    separator ('1234,56' → 1234.56); otherwise commas are thousands
    separators and are dropped ('1,234.56' → 1234.56).  What remains must
    be plain digits with an optional sign and dot: exponents ('5e3'),
    underscores ('1_000'), NaN and Infinity → None.
    """
    if value is None:
        return None
    s = _WHITESPACE_RE.sub("", value)
    if not s:
        return None
    if "," in s and "." not in s:
        s = s.replace(",", ".", 1)
    else:
        s = s.replace(",", "")
    if not _PLAIN_NUMBER_RE.fullmatch(s):
        return None
    try:
        return Decimal(s)
    except InvalidOperation:
        return None


def to_cents(value: Decimal) -> Decimal:
    """Quantize a money amount to two decimal places, rounding half up."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Rule 7: parse_money
# ---------------------------------------------------------------------------

def parse_money(value: str | None) -> Decimal | None:
    """normalize_number, then require 0 <= amount <= MONEY_MAX in cents."""
    number = normalize_number(value)
    if number is None or number < 0 or number > MONEY_MAX:
        return None
    return to_cents(number)
