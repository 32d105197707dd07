"""
Test configuration and fixtures for authentication tests.
"""

import pytest

from authentication.tests.factories import UserFactory


@pytest.fixture
def user(db):
    """Create a regular marketplace user with a known password."""
    return UserFactory(email="known@example.com", password="KnownPass123!")
