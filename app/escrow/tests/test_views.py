"""
Tests for the escrow API views.

Tests focus on observable HTTP behavior: status codes, response bodies,
database changes and permission enforcement. The Paystack adapter is
mocked wherever a view reaches the gateway.
"""

from unittest.mock import patch
from uuid import uuid4

import pytest
from rest_framework import status

from escrow.adapters import InitializeTransactionResult, PaystackAdapter, VerifyTransactionResult
from escrow.exceptions import PaystackAPIUnavailableError
from escrow.models import EscrowDispute, EscrowOrder
from escrow.state_machines import EscrowStatus
from escrow.tests.factories import DEFAULT_TOTAL_KOBO, EscrowOrderFactory
from listings.tests.factories import ProductFactory

# =============================================================================
# URL Constants
# =============================================================================

ORDERS_URL = "/api/v1/escrow/orders/"
FEE_QUOTE_URL = "/api/v1/escrow/fees/quote/"
VERIFY_URL = "/api/v1/escrow/verify/"
ADMIN_ACTIONS_URL = "/api/v1/escrow/admin/actions/"
ADMIN_DISPUTES_URL = "/api/v1/escrow/admin/disputes/"
ADMIN_PENDING_URL = "/api/v1/escrow/admin/pending-releases/"


def order_url(order_id, action=None):
    url = f"{ORDERS_URL}{order_id}/"
    return f"{url}{action}/" if action else url


@pytest.fixture
def paystack_initialize():
    result = InitializeTransactionResult(
        authorization_url="https://checkout.paystack.com/abc123",
        access_code="ac_abc123",
        reference="ignored",
    )
    with patch.object(PaystackAdapter, "initialize_transaction", return_value=result) as mock:
        yield mock


def reload(order):
    return EscrowOrder.objects.get(pk=order.pk)


# =============================================================================
# Checkout
# =============================================================================


class TestCheckout:
    def test_create_returns_checkout(self, buyer_client, product, paystack_initialize):
        response = buyer_client.post(ORDERS_URL, {"product_id": str(product.id)}, format="json")

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["authorization_url"] == "https://checkout.paystack.com/abc123"
        assert response.data["subtotal_kobo"] == 10_000_000
        assert response.data["escrow_fee_kobo"] == 160_000
        assert response.data["total_kobo"] == 10_160_000
        assert response.data["reference"] == response.data["order_id"]

    def test_below_minimum_is_forbidden(self, buyer_client, seller, paystack_initialize):
        product = ProductFactory(owner=seller, price_kobo=2_000_000)

        response = buyer_client.post(ORDERS_URL, {"product_id": str(product.id)}, format="json")

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data["error_code"] == "ESCROW_BELOW_MINIMUM"
        assert "₦50,000" in response.data["error"]

    def test_unknown_product_is_not_found(self, buyer_client, paystack_initialize):
        response = buyer_client.post(ORDERS_URL, {"product_id": str(uuid4())}, format="json")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_missing_product_id(self, buyer_client):
        response = buyer_client.post(ORDERS_URL, {}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "product_id" in response.data

    def test_gateway_failure_is_bad_gateway(self, buyer_client, product):
        with patch.object(
            PaystackAdapter, "initialize_transaction", side_effect=PaystackAPIUnavailableError("down")
        ):
            response = buyer_client.post(ORDERS_URL, {"product_id": str(product.id)}, format="json")

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert response.data["error_code"] == "PAYMENT_INIT_FAILED"
        assert EscrowOrder.objects.filter(pk=response.data["details"]["order_id"]).exists()

    def test_requires_authentication(self, api_client, product):
        response = api_client.post(ORDERS_URL, {"product_id": str(product.id)}, format="json")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_retry_initialize_payment(self, buyer_client, initialized_order):
        response = buyer_client.post(order_url(initialized_order.id, "initialize-payment"))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["authorization_url"] == initialized_order.authorization_url


# =============================================================================
# Orders
# =============================================================================


class TestOrderReads:
    def test_list_own_orders(self, buyer_client, initialized_order):
        EscrowOrderFactory()

        response = buyer_client.get(ORDERS_URL)

        assert response.status_code == status.HTTP_200_OK
        assert [row["id"] for row in response.data["results"]] == [str(initialized_order.id)]

    def test_list_filters_by_role(self, seller_client, initialized_order):
        response = seller_client.get(ORDERS_URL, {"role": "buyer"})

        assert response.data["results"] == []

    def test_retrieve_includes_audit_trail(self, buyer_client, funded_order, seller_client):
        seller_client.post(order_url(funded_order.id, "ship"), {"shipment_reference": "GIG-1"}, format="json")

        response = buyer_client.get(order_url(funded_order.id))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["status"] == EscrowStatus.AWAITING_BUYER_CONFIRMATION
        assert response.data["shipment_reference"] == "GIG-1"
        assert [e["event_type"] for e in response.data["events"]] == ["shipped", "awaiting_buyer_confirmation"]

    def test_outsider_gets_not_found(self, outsider_client, initialized_order):
        response = outsider_client.get(order_url(initialized_order.id))

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_non_uuid_id_is_not_routed(self, buyer_client):
        response = buyer_client.get(order_url("not-a-uuid"))

        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestOrderActions:
    def test_seller_ships(self, seller_client, funded_order):
        response = seller_client.post(order_url(funded_order.id, "ship"), {}, format="json")

        assert response.status_code == status.HTTP_200_OK
        assert response.data["status"] == EscrowStatus.AWAITING_BUYER_CONFIRMATION

    def test_buyer_cannot_ship(self, buyer_client, funded_order):
        response = buyer_client.post(order_url(funded_order.id, "ship"), {}, format="json")

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data["error_code"] == "UNAUTHORIZED"
        assert reload(funded_order).status == EscrowStatus.FUNDED

    def test_ship_unfunded_is_conflict(self, seller_client, initialized_order):
        response = seller_client.post(order_url(initialized_order.id, "ship"), {}, format="json")

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["details"]["current_status"] == EscrowStatus.INITIALIZED

    def test_buyer_confirms_delivery(self, buyer_client, awaiting_confirmation_order):
        response = buyer_client.post(order_url(awaiting_confirmation_order.id, "confirm-delivery"))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["status"] == EscrowStatus.PENDING_ADMIN_RELEASE

    def test_confirm_settled_order(self, buyer_client, released_order):
        response = buyer_client.post(order_url(released_order.id, "confirm-delivery"))

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["error_code"] == "ALREADY_SETTLED"

    def test_buyer_opens_dispute(self, buyer_client, awaiting_confirmation_order):
        response = buyer_client.post(
            order_url(awaiting_confirmation_order.id, "dispute"),
            {"reason": "Wrong colour and scratched", "buyer_notes": "See photos"},
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["status"] == "open"
        assert response.data["order"]["status"] == EscrowStatus.DISPUTED

    def test_dispute_reason_too_short(self, buyer_client, funded_order):
        response = buyer_client.post(order_url(funded_order.id, "dispute"), {"reason": "meh"}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "REASON_TOO_SHORT"

    def test_second_dispute_is_conflict(self, buyer_client, disputed_order):
        response = buyer_client.post(
            order_url(disputed_order.id, "dispute"),
            {"reason": "Still not happy with it"},
            format="json",
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["error_code"] == "DISPUTE_ALREADY_OPEN"
        assert EscrowDispute.objects.filter(escrow_order=disputed_order).count() == 1


# =============================================================================
# Payments
# =============================================================================


class TestFeeQuote:
    def test_quote(self, buyer_client):
        response = buyer_client.get(FEE_QUOTE_URL, {"subtotal_kobo": 100_000})

        assert response.status_code == status.HTTP_200_OK
        assert response.data["escrow_fee_kobo"] == 11_500
        assert response.data["total_kobo"] == 111_500
        assert response.data["eligible"] is False

    def test_quote_requires_subtotal(self, buyer_client):
        response = buyer_client.get(FEE_QUOTE_URL)

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestVerifyPayment:
    def test_verify_by_trxref(self, buyer_client, initialized_order):
        reference = initialized_order.payment_reference
        result = VerifyTransactionResult(reference=reference, status="success", amount_kobo=DEFAULT_TOTAL_KOBO)

        with patch.object(PaystackAdapter, "verify_transaction", return_value=result):
            response = buyer_client.get(VERIFY_URL, {"trxref": reference})

        assert response.status_code == status.HTTP_200_OK
        assert response.data["funded"] is True
        assert reload(initialized_order).status == EscrowStatus.FUNDED

    def test_reference_required(self, buyer_client):
        response = buyer_client.get(VERIFY_URL)

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_gateway_down(self, buyer_client, initialized_order):
        with patch.object(
            PaystackAdapter, "verify_transaction", side_effect=PaystackAPIUnavailableError("down")
        ):
            response = buyer_client.get(VERIFY_URL, {"reference": initialized_order.payment_reference})

        assert response.status_code == status.HTTP_502_BAD_GATEWAY


# =============================================================================
# Admin
# =============================================================================


class TestAdminActions:
    def test_release(self, admin_client, pending_release_order):
        response = admin_client.post(
            ADMIN_ACTIONS_URL,
            {"action": "admin_release_to_seller", "escrow_order_id": str(pending_release_order.id)},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["status"] == EscrowStatus.RELEASED_TO_SELLER
        assert response.data["admin_decision_type"] == "release"

    def test_resolve_refund(self, admin_client, disputed_order):
        response = admin_client.post(
            ADMIN_ACTIONS_URL,
            {
                "action": "admin_resolve_dispute",
                "escrow_order_id": str(disputed_order.id),
                "payload": {"resolution": "refund", "note": "Seller unresponsive"},
            },
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["status"] == EscrowStatus.REFUND_TO_BUYER

    def test_resolve_requires_resolution(self, admin_client, disputed_order):
        response = admin_client.post(
            ADMIN_ACTIONS_URL,
            {"action": "admin_resolve_dispute", "escrow_order_id": str(disputed_order.id)},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert reload(disputed_order).status == EscrowStatus.DISPUTED

    def test_release_wrong_state_reports_status(self, admin_client, funded_order):
        response = admin_client.post(
            ADMIN_ACTIONS_URL,
            {"action": "admin_release_to_seller", "escrow_order_id": str(funded_order.id)},
            format="json",
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["details"]["current_status"] == EscrowStatus.FUNDED
        assert response.data["details"]["order_id"] == str(funded_order.id)

    def test_unknown_action_rejected(self, admin_client, pending_release_order):
        response = admin_client.post(
            ADMIN_ACTIONS_URL,
            {"action": "admin_delete", "escrow_order_id": str(pending_release_order.id)},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    @pytest.mark.parametrize("client_fixture", ["buyer_client", "seller_client"])
    def test_parties_cannot_use_admin_actions(self, request, client_fixture, pending_release_order):
        client = request.getfixturevalue(client_fixture)

        response = client.post(
            ADMIN_ACTIONS_URL,
            {"action": "admin_release_to_seller", "escrow_order_id": str(pending_release_order.id)},
            format="json",
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert reload(pending_release_order).status == EscrowStatus.PENDING_ADMIN_RELEASE


class TestAdminQueues:
    def test_open_disputes(self, admin_client, disputed_order):
        response = admin_client.get(ADMIN_DISPUTES_URL)

        assert response.status_code == status.HTTP_200_OK
        assert response.data["results"][0]["escrow_order"] == disputed_order.id

    def test_pending_releases(self, admin_client, pending_release_order):
        response = admin_client.get(ADMIN_PENDING_URL)

        assert [row["id"] for row in response.data["results"]] == [str(pending_release_order.id)]

    def test_queues_are_staff_only(self, buyer_client):
        assert buyer_client.get(ADMIN_DISPUTES_URL).status_code == status.HTTP_403_FORBIDDEN
        assert buyer_client.get(ADMIN_PENDING_URL).status_code == status.HTTP_403_FORBIDDEN
