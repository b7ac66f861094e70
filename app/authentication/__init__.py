"""
Authentication application.

Holds the user model the finance core references: every posting records who
created it, petty-cash allocations belong to a custodian, and students own
receivable balances. A user's ``role`` decides which petty-cash account
they draw on.

Usage:
    from authentication.models import User, UserRole
"""
