"""
Base service layer patterns for business logic encapsulation.

Services encapsulate business logic separate from models and from whatever
transport calls them (views, Celery tasks, management commands). Models
hold data, services hold the rules.

Usage:
    from core.services import BaseService

    class ExpenseService(BaseService):
        @classmethod
        def mark_paid(cls, expense):
            with cls.atomic():
                expense.mark_paid()
                expense.save()

            cls.get_logger().info(f"Expense {expense.expense_id} paid")

Related:
    - core.exceptions: Errors raised by services
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator


class BaseService:
    """
    Base class for service layer classes.

    Provides common utilities for services:
    - Logging setup per service
    - Database transaction management

    Design Notes:
        - Use @staticmethod or @classmethod (no instance state)
        - Raise core.exceptions errors for failures; never return
          partially applied results
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns a logger named after the service class for
        easy filtering in logs.

        Returns:
            Logger instance for this service
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        All database operations within this context manager are
        wrapped in a transaction. If any operation fails, all
        changes are rolled back.

        Yields:
            None

        Example:
            with cls.atomic():
                transaction = Transaction.objects.create(...)
                TransactionEntry.objects.create(transaction=transaction, ...)
                # If the entry fails, the header is rolled back too
        """
        with transaction.atomic():
            yield
