"""campaign_etl.validate

Row validation for campaign performance CSV rows.

One rule set, two strictness modes:
  strict   - campaign_type must be a known type; every violation in the row
             is reported together.
  lenient  - campaign_type is free text; validation stops at the first
             violation.

validate_row() is pure: it never touches counters, collectors or sinks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator

from campaign_etl.normalize import (
    is_valid_campaign_id,
    normalize_space,
    parse_count,
    parse_iso_date,
    parse_money,
    trim,
)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

REQUIRED_FIELDS = (
    "date",
    "campaign_id",
    "campaign_name",
    "campaign_type",
    "impressions",
    "clicks",
    "cost",
    "conversions",
    "conversion_value",
)

CAMPAIGN_TYPES = ("Search", "Shopping", "Display", "Video")

COUNT_FIELDS = ("impressions", "clicks", "conversions")
MONEY_FIELDS = ("cost", "conversion_value")


class Strictness(str, Enum):
    STRICT = "strict"
    LENIENT = "lenient"

    @property
    def enforces_campaign_type(self) -> bool:
        return self is Strictness.STRICT

    @property
    def aggregates(self) -> bool:
        return self is Strictness.STRICT


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CampaignMeta:
    campaign_id: str
    campaign_name: str
    campaign_type: str

    def to_record(self) -> dict[str, Any]:
        return {
            "campaign_id": self.campaign_id,
            "campaign_name": self.campaign_name,
            "campaign_type": self.campaign_type,
        }


@dataclass(frozen=True)
class MetricRow:
    """One day of performance numbers for a campaign.

    Invariants: clicks <= impressions, conversions <= clicks, money fields
    quantized to cents.
    """

    campaign_id: str
    date: date
    impressions: int
    clicks: int
    cost: Decimal
    conversions: int
    conversion_value: Decimal

    def to_record(self) -> dict[str, Any]:
        """JSON-safe dict for sinks that serialize rows."""
        return {
            "campaign_id": self.campaign_id,
            "date": self.date.isoformat(),
            "impressions": self.impressions,
            "clicks": self.clicks,
            "cost": str(self.cost),
            "conversions": self.conversions,
            "conversion_value": str(self.conversion_value),
        }


@dataclass(frozen=True)
class RowResult:
    metric: MetricRow | None = None
    campaign: CampaignMeta | None = None
    errors: tuple[str, ...] = ()
    missing_fields: tuple[str, ...] = field(default=())

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def message(self) -> str:
        return "; ".join(self.errors)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _violations(
    row: dict[str, str],
    missing: tuple[str, ...],
    strictness: Strictness,
    parsed: dict[str, Any],
) -> Iterator[str]:
    """Yield rule violations in a fixed order, filling `parsed` as it goes.

    Format checks are skipped for fields already reported as empty.
    """
    for name in missing:
        yield f"{name} is empty"

    raw_date = trim(row.get("date"))
    if raw_date is not None:
        parsed["date"] = parse_iso_date(raw_date)
        if parsed["date"] is None:
            yield f"Invalid date: {raw_date} (expected YYYY-MM-DD)"

    campaign_id = trim(row.get("campaign_id"))
    if campaign_id is not None and not is_valid_campaign_id(campaign_id):
        yield f"Invalid campaign_id: {campaign_id}"

    campaign_type = trim(row.get("campaign_type"))
    if (
        strictness.enforces_campaign_type
        and campaign_type is not None
        and campaign_type not in CAMPAIGN_TYPES
    ):
        yield (
            f"campaign_type must be one of {', '.join(CAMPAIGN_TYPES)}, "
            f"got {campaign_type}"
        )

    for name in COUNT_FIELDS:
        raw = trim(row.get(name))
        if raw is None:
            continue
        parsed[name] = parse_count(raw)
        if parsed[name] is None:
            yield f"Invalid {name}: {raw}"

    for name in MONEY_FIELDS:
        raw = trim(row.get(name))
        if raw is None:
            continue
        parsed[name] = parse_money(raw)
        if parsed[name] is None:
            yield f"Invalid {name}: {raw}"

    impressions = parsed.get("impressions")
    clicks = parsed.get("clicks")
    conversions = parsed.get("conversions")
    if impressions is not None and clicks is not None and clicks > impressions:
        yield f"clicks ({clicks}) > impressions ({impressions})"
    if clicks is not None and conversions is not None and conversions > clicks:
        yield f"conversions ({conversions}) > clicks ({clicks})"


def validate_row(
    row: dict[str, str],
    strictness: Strictness = Strictness.STRICT,
) -> RowResult:
    """Validate and normalize one header-keyed row.

    Returns a RowResult holding either the normalized MetricRow and
    CampaignMeta, or the violation messages.  missing_fields always lists
    every empty required field, even in lenient mode, so callers can keep
    per-field null counts.
    """
    missing = tuple(f for f in REQUIRED_FIELDS if trim(row.get(f)) is None)
    parsed: dict[str, Any] = {}
    checks = _violations(row, missing, strictness, parsed)

    if strictness.aggregates:
        errors = tuple(checks)
    else:
        first = next(checks, None)
        errors = (first,) if first is not None else ()

    if errors:
        return RowResult(errors=errors, missing_fields=missing)

    campaign_id = trim(row["campaign_id"])
    metric = MetricRow(
        campaign_id=campaign_id,
        date=parsed["date"],
        impressions=parsed["impressions"],
        clicks=parsed["clicks"],
        cost=parsed["cost"],
        conversions=parsed["conversions"],
        conversion_value=parsed["conversion_value"],
    )
    campaign = CampaignMeta(
        campaign_id=campaign_id,
        campaign_name=normalize_space(row["campaign_name"]),
        campaign_type=trim(row["campaign_type"]),
    )
    return RowResult(metric=metric, campaign=campaign, missing_fields=missing)
