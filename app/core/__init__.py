"""
Core infrastructure shared by every app.

Contents:
    - BaseService: Service base class (logging, atomic blocks)
    - Exceptions: BaseApplicationError and its ValidationError,
      NotFoundError, ConflictError subclasses
    - LookupCache: Namespaced lookup cache on the Django cache backend

Note:
    Models and model mixins are NOT imported here to avoid
    AppRegistryNotReady errors. Import them directly:
        from core.models import BaseModel
        from core.model_mixins import UUIDPrimaryKeyMixin
"""

from .cache import LookupCache
from .exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from .services import BaseService

__all__ = [
    # Services
    "BaseService",
    # Exceptions
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    # Cache
    "LookupCache",
]
