"""
Duplicate detection for postings.

Two checks, in order:
    1. Exact idempotency key. The key is unique in the database, so this is
       authoritative: an event with a known key is never posted again.
    2. Recency window. A booked entry with the same source and source_id,
       created within FINANCE_DUPLICATE_WINDOW_SECONDS, whose metadata agrees
       on every discriminator the caller supplies (amount, category, ...).
       This catches retries that arrive with a regenerated key.

Usage:
    from finance.ledger.duplicates import find_duplicate

    existing = find_duplicate(
        source="petty_cash_expense",
        source_id="MR-0042",
        idempotency_key="petty_cash_expense:usage-9",
        match={"amount": Decimal("25.00"), "category": "cleaning"},
    )
    if existing is not None:
        return PostingResult(entry=existing, duplicate=True)
"""

from __future__ import annotations

import datetime
import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from .exceptions import InvalidLineError
from .models import BOOKED_STATUSES, TransactionEntry
from .types import to_money

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 60


def _normalize(value: Any) -> Any:
    """Compare numbers as two-place Decimals and everything else as strings."""
    if isinstance(value, (Decimal, int)) and not isinstance(value, bool):
        return to_money(value)
    if isinstance(value, str):
        try:
            return to_money(value)
        except InvalidLineError:
            return value.strip().lower()
    return value


def metadata_matches(metadata: dict, match: dict[str, Any]) -> bool:
    """Whether metadata agrees with every key of match."""
    for key, expected in match.items():
        if key not in metadata:
            return False
        if _normalize(metadata[key]) != _normalize(expected):
            return False
    return True


def find_duplicate(
    source: str,
    source_id: str,
    idempotency_key: str | None = None,
    match: dict[str, Any] | None = None,
    window_seconds: int | None = None,
) -> TransactionEntry | None:
    """
    Find an entry that already records this event.

    Args:
        source: Producing subsystem
        source_id: Originating business object id
        idempotency_key: Key of the event (checked first)
        match: Metadata discriminators for the recency-window check; the
            window check is skipped when None
        window_seconds: Window length (defaults to the setting)

    Returns:
        The existing entry, or None
    """
    if idempotency_key:
        existing = (
            TransactionEntry.objects.select_related("transaction")
            .filter(idempotency_key=idempotency_key)
            .first()
        )
        if existing is not None:
            logger.info(
                f"Duplicate event {idempotency_key}, returning existing entry",
                extra={"idempotency_key": idempotency_key, "entry_id": str(existing.id)},
            )
            return existing

    if match is None:
        return None

    if window_seconds is None:
        window_seconds = getattr(
            settings, "FINANCE_DUPLICATE_WINDOW_SECONDS", DEFAULT_WINDOW_SECONDS
        )
    since = timezone.now() - datetime.timedelta(seconds=window_seconds)

    candidates = (
        TransactionEntry.objects.select_related("transaction")
        .filter(
            source=source,
            source_id=str(source_id),
            status__in=BOOKED_STATUSES,
            created_at__gte=since,
        )
        .order_by("-created_at")
    )
    for candidate in candidates:
        if metadata_matches(candidate.metadata or {}, match):
            logger.info(
                f"Duplicate {source} {source_id} within {window_seconds}s window",
                extra={
                    "source": source,
                    "source_id": str(source_id),
                    "entry_id": str(candidate.id),
                },
            )
            return candidate
    return None
