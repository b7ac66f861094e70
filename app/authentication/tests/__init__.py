"""
Tests for the authentication app.

Usage:
    pytest authentication/tests/
"""
