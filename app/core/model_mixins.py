"""
Model mixins providing reusable functionality for Django models.

Available Mixins:
    UUIDPrimaryKeyMixin: Use UUID as primary key

Usage:
    from core.models import BaseModel
    from core.model_mixins import UUIDPrimaryKeyMixin

    class Expense(UUIDPrimaryKeyMixin, BaseModel):
        amount = models.DecimalField(max_digits=14, decimal_places=2)
"""

from __future__ import annotations

import uuid

from django.db import models


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use UUID as primary key instead of auto-increment integer.

    Ledger records are referenced from other systems (source ids, metadata,
    idempotency keys), so ids must be stable and safe to generate before
    the row is inserted.

    Fields:
        id: UUIDField as primary key (auto-generated)

    Usage:
        entry = TransactionEntry.objects.create(...)
        print(entry.id)  # UUID like: 550e8400-e29b-41d4-a716-446655440000
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True
