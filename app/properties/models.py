"""
Residence model.

A residence is the property a posting is attributed to. The finance core
only needs its identity and name.
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class Residence(UUIDPrimaryKeyMixin, BaseModel):
    """
    A property whose books the ledger keeps.

    Fields:
        id: UUID primary key
        name: Display name, unique
        address: Optional street address
        is_active: Whether the residence still operates
    """

    name = models.CharField(
        max_length=200,
        unique=True,
        help_text="Residence display name",
    )
    address = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Street address",
    )
    is_active = models.BooleanField(
        default=True,
        help_text="Whether this residence is operating",
    )

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name
