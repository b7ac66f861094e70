"""
Residence lookup errors.
"""

from __future__ import annotations

from core.exceptions import NotFoundError


class ResidenceNotFound(NotFoundError):
    """
    Raised when a residence id does not resolve, or when no residence
    exists at all for the default-residence fallback.
    """

    default_error_code: str = "RESIDENCE_NOT_FOUND"
