"""
Tests for UserManager.

The UserManager provides:
- create_user(): Creates users keyed by email (password optional)
- create_superuser(): Creates staff users with the admin role
"""

import pytest

from authentication.models import User, UserRole


class TestUserManagerCreateUser:
    """Tests for UserManager.create_user() method."""

    def test_creates_user_with_email_and_password(self, db):
        """Should create a user that can authenticate with the password."""
        user = User.objects.create_user(
            email="mgr_create_user@example.com", password="SecurePass123!"
        )

        assert user.pk is not None
        assert user.email == "mgr_create_user@example.com"
        assert user.check_password("SecurePass123!") is True

    def test_normalizes_email_domain_to_lowercase(self, db):
        """Should lowercase the domain part of the email."""
        user = User.objects.create_user(email="Someone@EXAMPLE.COM")

        assert user.email == "Someone@example.com"

    def test_without_password_sets_unusable_password(self, db):
        """Users created without a password cannot log in with one."""
        user = User.objects.create_user(email="nopass@example.com")

        assert user.has_usable_password() is False

    def test_defaults_to_student_role(self, db):
        """New users are students unless a role is given."""
        user = User.objects.create_user(email="student@example.com")

        assert user.role == UserRole.STUDENT

    def test_accepts_role(self, db):
        """Should persist the given role."""
        user = User.objects.create_user(
            email="finance@example.com", role=UserRole.FINANCE_USER
        )

        assert user.role == UserRole.FINANCE_USER

    def test_raises_without_email(self, db):
        """Should refuse to create a user without an email."""
        with pytest.raises(ValueError, match="Email"):
            User.objects.create_user(email="")


class TestUserManagerCreateSuperuser:
    """Tests for UserManager.create_superuser() method."""

    def test_creates_staff_admin(self, db):
        """Superusers are staff with the admin role."""
        admin = User.objects.create_superuser(
            email="root@example.com", password="AdminPass123!"
        )

        assert admin.is_staff is True
        assert admin.role == UserRole.ADMIN

    def test_rejects_non_staff_superuser(self, db):
        """Should raise when is_staff is explicitly False."""
        with pytest.raises(ValueError, match="is_staff"):
            User.objects.create_superuser(email="bad@example.com", is_staff=False)


class TestUserNames:
    """Tests for User display name helpers."""

    def test_full_name_falls_back_to_email(self, db):
        """Without names, the full name is the email."""
        user = User.objects.create_user(email="anon@example.com")

        assert user.get_full_name() == "anon@example.com"
        assert user.get_short_name() == "anon"
