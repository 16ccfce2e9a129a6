"""Identities used across the test suite."""

ADMIN_EMAIL = "admin@example.com"
USER_EMAIL = "test@example.com"
