"""
Billing periods.

A billing period is a calendar month labelled "YYYY-MM". Payments declare
the period they are for in free text; parse_period() accepts:

    "2025-09", "2025/09", "2025-9"
    "September 2025", "Sep 2025", "sept-2025"
    "September", "sep"          (year taken from the payment date)

Usage:
    from finance.periods import Period, parse_period, prorate_rent

    period = parse_period("September 2025")
    period.label          # "2025-09"
    period.next().label   # "2025-10"

    prorate_rent(Decimal("180.00"), date(2025, 10, 13))  # Decimal("110.32")
"""

from __future__ import annotations

import calendar
import datetime
import logging
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from django.utils import timezone

logger = logging.getLogger(__name__)

_NUMERIC_PATTERN = re.compile(r"^\s*(\d{4})\s*[-/.]\s*(\d{1,2})\s*$")
_NAMED_PATTERN = re.compile(r"^\s*([a-z]+)\.?(?:[\s,\-/]+(\d{4}))?\s*$")

MONTH_NAMES: dict[str, int] = {}
for _number in range(1, 13):
    MONTH_NAMES[calendar.month_name[_number].lower()] = _number
    MONTH_NAMES[calendar.month_abbr[_number].lower()] = _number
MONTH_NAMES["sept"] = 9


@dataclass(frozen=True, order=True)
class Period:
    """A calendar month."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"Invalid month {self.month}")

    @classmethod
    def from_date(cls, date: datetime.date) -> Period:
        return cls(date.year, date.month)

    @classmethod
    def current(cls) -> Period:
        """Period of today's local date."""
        return cls.from_date(timezone.localdate())

    @property
    def label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def days(self) -> int:
        return calendar.monthrange(self.year, self.month)[1]

    @property
    def start(self) -> datetime.date:
        return datetime.date(self.year, self.month, 1)

    @property
    def end(self) -> datetime.date:
        return datetime.date(self.year, self.month, self.days)

    def next(self) -> Period:
        if self.month == 12:
            return Period(self.year + 1, 1)
        return Period(self.year, self.month + 1)

    def previous(self) -> Period:
        if self.month == 1:
            return Period(self.year - 1, 12)
        return Period(self.year, self.month - 1)

    def contains(self, date: datetime.date) -> bool:
        return (date.year, date.month) == (self.year, self.month)

    def __str__(self) -> str:
        return self.label


def parse_period(
    label: str | None,
    reference_date: datetime.date | None = None,
) -> Period | None:
    """
    Parse a billing period label.

    Args:
        label: Free-text period ("2025-09", "September 2025", "sep", ...)
        reference_date: Supplies the year when the label has none
            (defaults to today)

    Returns:
        The Period, or None if the label cannot be understood
    """
    if not label:
        return None
    text = str(label).strip().lower()

    numeric = _NUMERIC_PATTERN.match(text)
    if numeric:
        year, month = int(numeric.group(1)), int(numeric.group(2))
        if 1 <= month <= 12:
            return Period(year, month)
        return None

    named = _NAMED_PATTERN.match(text)
    if named:
        month = MONTH_NAMES.get(named.group(1))
        if month is None:
            return None
        if named.group(2):
            year = int(named.group(2))
        else:
            year = (reference_date or timezone.localdate()).year
        return Period(year, month)

    return None


def resolve_period(
    label: str | None,
    reference_date: datetime.date | None = None,
) -> Period:
    """
    Parse a period label, falling back to the current period.

    An unparseable label is treated as settling the current period and
    logged as a warning.
    """
    period = parse_period(label, reference_date)
    if period is None:
        period = Period.current()
        logger.warning(
            f"Unparseable billing period {label!r}, using {period.label}",
            extra={"period_label": label, "period": period.label},
        )
    return period


def prorate_rent(monthly_rent: Decimal, start_date: datetime.date) -> Decimal:
    """
    Rent for the part of the month from start_date to month end (inclusive).

    Computed as rent / days_in_month * days_remaining, rounded half-up to
    two places.
    """
    period = Period.from_date(start_date)
    days_remaining = period.days - start_date.day + 1
    amount = Decimal(monthly_rent) / period.days * days_remaining
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
