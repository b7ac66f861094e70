"""
Residence lookups used by the finance core.

Usage:
    from properties.services import get_residence, get_default_residence

    residence = get_residence(residence_id)      # raises ResidenceNotFound
    fallback = get_default_residence()           # earliest created residence

The default residence id is memoized in a LookupCache; the row itself is
always re-read so a deleted residence is never returned.
"""

from __future__ import annotations

import logging
import uuid

from django.core.exceptions import ValidationError as DjangoValidationError

from core.cache import LookupCache
from properties.exceptions import ResidenceNotFound
from properties.models import Residence

logger = logging.getLogger(__name__)

DEFAULT_RESIDENCE_KEY = "default_residence"

lookup_cache = LookupCache("residences")


def get_residence(residence: Residence | uuid.UUID | str | None) -> Residence:
    """
    Resolve a residence instance or id.

    Args:
        residence: Residence instance, its UUID, or the UUID as a string

    Returns:
        The Residence

    Raises:
        ResidenceNotFound: If residence is empty or does not exist
    """
    if isinstance(residence, Residence):
        return residence
    if not residence:
        raise ResidenceNotFound("Residence is required")

    try:
        found = Residence.objects.filter(id=residence).first()
    except (DjangoValidationError, ValueError):
        found = None
    if found is None:
        raise ResidenceNotFound(
            f"Residence {residence} not found",
            details={"residence_id": str(residence)},
        )
    return found


def _load_default_residence_id() -> uuid.UUID | None:
    return (
        Residence.objects.order_by("created_at", "id")
        .values_list("id", flat=True)
        .first()
    )


def get_default_residence() -> Residence:
    """
    Return the earliest created residence.

    Reserved for petty-cash operations that arrive without a residence.

    Raises:
        ResidenceNotFound: If no residence exists
    """
    residence_id = lookup_cache.get_or_set(
        DEFAULT_RESIDENCE_KEY, _load_default_residence_id
    )
    residence = (
        Residence.objects.filter(id=residence_id).first() if residence_id else None
    )
    if residence is None and residence_id is not None:
        # Cached id is gone; reload once.
        lookup_cache.delete(DEFAULT_RESIDENCE_KEY)
        residence_id = lookup_cache.get_or_set(
            DEFAULT_RESIDENCE_KEY, _load_default_residence_id
        )
        residence = (
            Residence.objects.filter(id=residence_id).first() if residence_id else None
        )

    if residence is None:
        raise ResidenceNotFound("No residence exists to use as default")

    logger.warning(
        "Using default residence",
        extra={"residence_id": str(residence.id), "residence": residence.name},
    )
    return residence
