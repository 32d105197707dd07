"""
Authentication application.

Provides the email-based User model shared by buyers, sellers and
escrow administrators, plus JWT token endpoints.

Usage:
    from authentication.models import User
"""
