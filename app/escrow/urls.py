"""
URL configuration for the escrow API.

All URLs are prefixed with /api/v1/escrow/ in the main URL configuration.
See escrow.views for the full URL structure.
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from escrow.views import (
    AdminActionView,
    AdminDisputeListView,
    AdminPendingReleaseListView,
    EscrowOrderViewSet,
    FeeQuoteView,
    VerifyPaymentView,
)
from escrow.webhooks.views import paystack_webhook

router = DefaultRouter()
router.register(r"orders", EscrowOrderViewSet, basename="escrow-order")

app_name = "escrow"

urlpatterns = [
    path("", include(router.urls)),
    path("fees/quote/", FeeQuoteView.as_view(), name="fee-quote"),
    path("verify/", VerifyPaymentView.as_view(), name="verify-payment"),
    # Admin console
    path("admin/actions/", AdminActionView.as_view(), name="admin-actions"),
    path("admin/disputes/", AdminDisputeListView.as_view(), name="admin-disputes"),
    path("admin/pending-releases/", AdminPendingReleaseListView.as_view(), name="admin-pending-releases"),
    # Gateway callbacks
    path("webhooks/paystack/", paystack_webhook, name="paystack-webhook"),
]
