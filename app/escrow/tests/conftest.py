"""
Pytest fixtures for escrow tests.

Fixtures provide orders already sitting in each lifecycle state so tests
can exercise a single transition.

Usage:
    def test_seller_ships(funded_order):
        EscrowEngine.ship(funded_order, funded_order.seller)
"""

import pytest
from rest_framework.test import APIClient

from authentication.tests.factories import AdminUserFactory, UserFactory
from escrow.state_machines import AdminDecisionType, EscrowStatus
from escrow.tests.factories import (
    EscrowDisputeFactory,
    EscrowOrderFactory,
    awaiting_confirmation_kwargs,
    disputed_kwargs,
    funded_order_kwargs,
    pending_release_kwargs,
)
from listings.tests.factories import ProductFactory

# =============================================================================
# Users
# =============================================================================


@pytest.fixture
def buyer(db):
    return UserFactory(full_name="Chidi Buyer")


@pytest.fixture
def seller(db):
    return UserFactory(full_name="Ada Seller")


@pytest.fixture
def admin_user(db):
    return AdminUserFactory()


@pytest.fixture
def outsider(db):
    """Authenticated user who is not party to any order."""
    return UserFactory()


@pytest.fixture
def product(db, seller):
    """₦100,000 product listed by the seller."""
    return ProductFactory(owner=seller, price_kobo=10_000_000)


# =============================================================================
# Orders by State
# =============================================================================


@pytest.fixture
def initialized_order(db, buyer, seller):
    return EscrowOrderFactory(buyer=buyer, seller=seller)


@pytest.fixture
def funded_order(db, buyer, seller):
    return EscrowOrderFactory(buyer=buyer, seller=seller, **funded_order_kwargs())


@pytest.fixture
def awaiting_confirmation_order(db, buyer, seller):
    return EscrowOrderFactory(buyer=buyer, seller=seller, **awaiting_confirmation_kwargs())


@pytest.fixture
def pending_release_order(db, buyer, seller):
    return EscrowOrderFactory(buyer=buyer, seller=seller, **pending_release_kwargs())


@pytest.fixture
def disputed_order(db, buyer, seller):
    order = EscrowOrderFactory(buyer=buyer, seller=seller, **disputed_kwargs())
    EscrowDisputeFactory(escrow_order=order, opened_by=buyer)
    return order


@pytest.fixture
def released_order(db, buyer, seller, admin_user):
    from django.utils import timezone

    now = timezone.now()
    return EscrowOrderFactory(
        buyer=buyer,
        seller=seller,
        status=EscrowStatus.RELEASED_TO_SELLER,
        funded_at=now,
        buyer_confirmed_at=now,
        released_at=now,
        admin_decision_type=AdminDecisionType.RELEASE,
        admin_decision_by=admin_user,
        admin_decision_at=now,
    )


# =============================================================================
# API Clients
# =============================================================================


def _client_for(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def buyer_client(buyer):
    return _client_for(buyer)


@pytest.fixture
def seller_client(seller):
    return _client_for(seller)


@pytest.fixture
def admin_client(admin_user):
    return _client_for(admin_user)


@pytest.fixture
def outsider_client(outsider):
    return _client_for(outsider)
