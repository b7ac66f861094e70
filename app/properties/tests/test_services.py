"""
Tests for residence lookups.
"""

import uuid
from datetime import timedelta

import pytest

from properties.exceptions import ResidenceNotFound
from properties.models import Residence
from properties.services import get_default_residence, get_residence
from properties.tests.factories import ResidenceFactory


def _make_later(residence, than):
    Residence.objects.filter(id=residence.id).update(
        created_at=than.created_at + timedelta(seconds=1)
    )


class TestGetResidence:
    """Tests for get_residence()."""

    def test_returns_instance_unchanged(self, db):
        """An instance is returned as-is."""
        residence = ResidenceFactory()

        assert get_residence(residence) is residence

    def test_resolves_by_id_and_string(self, db):
        """Both UUID and string ids resolve."""
        residence = ResidenceFactory()

        assert get_residence(residence.id) == residence
        assert get_residence(str(residence.id)) == residence

    def test_missing_residence_raises(self, db):
        """An empty reference is an error, never defaulted."""
        with pytest.raises(ResidenceNotFound):
            get_residence(None)

    def test_unknown_id_raises(self, db):
        """An id with no row raises with the id in details."""
        missing = uuid.uuid4()

        with pytest.raises(ResidenceNotFound) as exc_info:
            get_residence(missing)

        assert exc_info.value.details["residence_id"] == str(missing)

    def test_malformed_id_raises(self, db):
        """A string that is not a UUID raises ResidenceNotFound."""
        with pytest.raises(ResidenceNotFound):
            get_residence("not-a-uuid")


class TestGetDefaultResidence:
    """Tests for get_default_residence()."""

    def test_returns_earliest_created(self, db):
        """The first residence created is the default."""
        first = ResidenceFactory(name="Alpha")
        second = ResidenceFactory(name="Beta")
        _make_later(second, first)

        assert get_default_residence() == first

    def test_reloads_when_cached_residence_deleted(self, db):
        """A stale cached id is replaced by the next earliest residence."""
        first = ResidenceFactory(name="Alpha")
        second = ResidenceFactory(name="Beta")
        _make_later(second, first)
        get_default_residence()

        Residence.objects.filter(id=first.id).delete()

        assert get_default_residence() == second

    def test_raises_when_no_residence(self, db):
        """Without any residence there is nothing to default to."""
        with pytest.raises(ResidenceNotFound):
            get_default_residence()
