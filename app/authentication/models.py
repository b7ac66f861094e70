"""
Authentication models.

This module defines the slim User model referenced by the finance core:
- Transaction headers record the user who created them
- Petty-cash allocations belong to a custodian user
- Debtors (students) are users with the student role

Related files:
    - managers.py: Custom user manager for email-based creation
"""

from django.contrib.auth.models import AbstractBaseUser
from django.db import models

from authentication.managers import UserManager
from core.model_mixins import UUIDPrimaryKeyMixin


class UserRole(models.TextChoices):
    """
    Roles known to the finance core.

    The role decides which petty-cash asset account a custodian draws on.
    """

    ADMIN = "admin", "Admin"
    FINANCE_ADMIN = "finance_admin", "Finance Admin"
    FINANCE_USER = "finance_user", "Finance User"
    PROPERTY_MANAGER = "property_manager", "Property Manager"
    MAINTENANCE = "maintenance", "Maintenance"
    STUDENT = "student", "Student"


class User(UUIDPrimaryKeyMixin, AbstractBaseUser):
    """
    Email-keyed user.

    Fields:
        id: UUID primary key
        email: Primary identifier, unique
        first_name / last_name: Display name parts
        role: Business role (see UserRole)
        is_active: Whether the account is active
        is_staff: Whether the user is back-office staff
        date_joined: When the user account was created

    Usage:
        student = User.objects.create_user(
            email="student@example.com",
            role=UserRole.STUDENT,
        )
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )
    first_name = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="User's first name",
    )
    last_name = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="User's last name",
    )
    role = models.CharField(
        max_length=30,
        choices=UserRole.choices,
        default=UserRole.STUDENT,
        db_index=True,
        help_text="Business role; selects the petty-cash account for custodians",
    )
    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user is back-office staff.",
    )
    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        """Return the user's email as string representation."""
        return self.email

    def get_full_name(self):
        """Return 'First Last', falling back to the email."""
        full_name = f"{self.first_name} {self.last_name}".strip()
        return full_name or self.email

    def get_short_name(self):
        """Return the first name, or the email local part."""
        return self.first_name or self.email.split("@")[0]
