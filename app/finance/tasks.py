"""
Celery tasks for the finance core.

This module provides scheduled tasks for:
- Accruing monthly rent for every active lease
- Rebuilding the cached debtor projections from the ledger

Usage:
    from finance.tasks import accrue_monthly_rent

    # Accrue the current month (typically via celery-beat)
    accrue_monthly_rent.delay()

    # Accrue a specific month
    accrue_monthly_rent.delay("2025-10")
"""

from __future__ import annotations

import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(acks_late=True)
def accrue_monthly_rent(period: str | None = None) -> dict:
    """
    Accrue one month of rent for every active lease.

    Safe to run more than once for the same month: accruals already posted
    are counted as duplicates and nothing is written again.

    Args:
        period: Billing period label (defaults to the current period)

    Returns:
        Dict with posted, duplicate and failed counts
    """
    # Import here to avoid loading models at worker import time
    from finance.periods import Period
    from finance.services.accrual_service import AccrualService

    label = period or Period.current().label
    logger.info("Starting monthly rent accrual", extra={"period": label})
    counts = AccrualService.accrue_month(label)
    if counts["failed"]:
        logger.warning(
            f"Monthly rent accrual for {label} had {counts['failed']} failure(s)",
            extra={"period": label, **counts},
        )
    return {"period": label, **counts}


@shared_task
def rebuild_all_debtors() -> dict:
    """
    Rebuild every debtor projection from posted entries.

    This task should be scheduled via celery-beat, e.g., nightly.

    Returns:
        Dict with the number of debtors rebuilt
    """
    from finance.services.debtor_service import DebtorService

    count = DebtorService.rebuild_all()
    return {"rebuilt": count}
