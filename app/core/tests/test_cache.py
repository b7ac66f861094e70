"""
Tests for the lookup cache.

Runs against the locmem backend configured for tests; expiry is driven with
freezegun, which the backend's clock follows.
"""

import pytest
from django.core.cache import cache
from freezegun import freeze_time

from core.cache import LookupCache


class TestLookupCache:
    """Tests for LookupCache."""

    def test_get_returns_value_before_expiry(self):
        """Should return the stored value while fresh."""
        with freeze_time("2025-09-01 12:00:00") as frozen:
            residences = LookupCache("residences", timeout=10)
            residences.set("default", "r-1")

            frozen.tick(9)

            assert residences.get("default") == "r-1"

    def test_entry_expires_after_timeout(self):
        """Should drop entries once the timeout has elapsed."""
        with freeze_time("2025-09-01 12:00:00") as frozen:
            residences = LookupCache("residences", timeout=10)
            residences.set("default", "r-1")

            frozen.tick(11)

            assert residences.get("default") is None
            assert residences.get("default", "fallback") == "fallback"

    def test_timeout_follows_settings(self, settings):
        settings.FINANCE_LOOKUP_CACHE_TTL = 42

        assert LookupCache("vendors").timeout == 42
        assert LookupCache("vendors", timeout=5).timeout == 5

    def test_get_or_set_calls_loader_once(self):
        """Should cache the loader result until expiry."""
        vendors = LookupCache("vendors")
        calls = []

        def loader():
            calls.append(1)
            return "vendor"

        assert vendors.get_or_set("acme", loader) == "vendor"
        assert vendors.get_or_set("acme", loader) == "vendor"
        assert len(calls) == 1

    def test_get_or_set_does_not_cache_none(self):
        """A miss is retried on the next call."""
        vendors = LookupCache("vendors")
        calls = []

        def loader():
            calls.append(1)
            return None

        vendors.get_or_set("missing", loader)
        vendors.get_or_set("missing", loader)

        assert len(calls) == 2

    def test_namespaces_are_separate(self):
        LookupCache("vendors").set("default", "v-1")

        assert LookupCache("residences").get("default") is None
        assert LookupCache("vendors").get("default") == "v-1"

    def test_keys_with_spaces(self):
        """Business names are stored under backend-safe keys."""
        vendors = LookupCache("vendors")
        vendors.set("name:acme plumbing  ltd", "v-1")

        assert vendors.get("name:acme plumbing  ltd") == "v-1"

    def test_delete_and_clear(self):
        vendors = LookupCache("vendors")
        residences = LookupCache("residences")
        vendors.set("a", 1)
        vendors.set("b", 2)
        residences.set("default", "r-1")

        vendors.delete("a")
        vendors.delete("not-there")
        assert vendors.get("a") is None
        assert vendors.get("b") == 2

        vendors.clear()
        assert vendors.get("b") is None
        assert residences.get("default") == "r-1"

    def test_stored_in_django_cache(self):
        """Entries live in the shared backend, not in the instance."""
        LookupCache("vendors").set("acme", "v-1")

        assert cache.get("lookup:vendors:0:acme") == "v-1"
        assert LookupCache("vendors").get("acme") == "v-1"

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValueError):
            LookupCache("vendors", timeout=0)
