"""
Namespaced lookup cache on top of Django's cache framework.

Lookups that the CRUD layer repeats constantly (the default residence,
vendors by business name) are memoized in the configured cache backend
(Redis in production, locmem in tests) for FINANCE_LOOKUP_CACHE_TTL seconds.

This cache is for reference data only. Ledger balances are always read from
posted entries and must never be stored here.

Keys are prefixed with the namespace and a generation number; clear()
bumps the generation, which orphans every key of the namespace without
needing pattern deletes from the backend.

Usage:
    from core.cache import LookupCache

    residences = LookupCache("residences")

    residence_id = residences.get_or_set("default", load_default_residence_id)
    residences.delete("default")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.cache import cache

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300


class LookupCache:
    """
    Key/value lookups stored in the default Django cache under a namespace.

    Args:
        namespace: Prefix separating this cache's keys from other users
        timeout: Lifetime of each entry in seconds (defaults to
            settings.FINANCE_LOOKUP_CACHE_TTL, read on every write)
    """

    def __init__(self, namespace: str, timeout: int | None = None) -> None:
        if timeout is not None and timeout <= 0:
            raise ValueError("timeout must be positive")
        self.namespace = namespace
        self._timeout = timeout

    @property
    def timeout(self) -> int:
        if self._timeout is not None:
            return self._timeout
        return getattr(settings, "FINANCE_LOOKUP_CACHE_TTL", DEFAULT_TIMEOUT)

    @property
    def _generation_key(self) -> str:
        return f"lookup:{self.namespace}:generation"

    def _key(self, key: str) -> str:
        generation = cache.get(self._generation_key, 0)
        return f"lookup:{self.namespace}:{generation}:{'-'.join(str(key).split())}"

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or default when missing or expired."""
        return cache.get(self._key(key), default)

    def set(self, key: str, value: Any, timeout: int | None = None) -> None:
        """Store value under key (timeout defaults to the cache timeout)."""
        cache.set(self._key(key), value, timeout=timeout or self.timeout)

    def get_or_set(self, key: str, loader: Callable[[], Any]) -> Any:
        """
        Return the cached value, calling loader and caching its result on a miss.

        None results are not cached, so a lookup that found nothing is
        retried on the next call.
        """
        value = self.get(key)
        if value is not None:
            return value

        value = loader()
        if value is not None:
            self.set(key, value)
        return value

    def delete(self, key: str) -> None:
        """Drop a single key if present."""
        cache.delete(self._key(key))

    def clear(self) -> None:
        """Drop every entry of this namespace."""
        generation = cache.get(self._generation_key, 0) + 1
        cache.set(self._generation_key, generation, timeout=None)
        logger.debug(
            f"Cleared lookup cache {self.namespace}",
            extra={"namespace": self.namespace, "generation": generation},
        )
