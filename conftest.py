"""
Root pytest configuration for the Django project.

This module configures Django for pytest-django before any test module is
imported. App-specific fixtures are defined in each app's tests/conftest.py;
project-wide fixtures live in app/conftest.py.

The suite runs against an in-memory SQLite database unless DATABASE_URL is
set, and never needs a Redis server.
"""

import os

import django

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite://:memory:")


def pytest_configure():
    """Configure Django settings before tests run."""
    from django.conf import settings

    # Locks are exercised through a fake Redis client; the cache stays local
    settings.CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        }
    }

    # Use fast password hasher for tests
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]

    django.setup()
