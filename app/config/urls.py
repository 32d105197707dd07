"""
URL configuration for the escrow backend.

The `urlpatterns` list routes URLs to views. This is the root URL configuration
that includes all app-specific routes.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/                  - Authentication endpoints
        token/                     - Obtain JWT pair
        token/refresh/             - Refresh JWT
    /api/v1/escrow/                - Escrow endpoints
        orders/                    - List my orders / create escrow order
        orders/{id}/               - Order detail
        orders/{id}/initialize-payment/ - Retry payment initialization
        orders/{id}/ship/          - Seller marks shipped
        orders/{id}/confirm-delivery/ - Buyer confirms delivery
        orders/{id}/dispute/       - Buyer opens dispute
        fees/quote/                - Fee quote for a subtotal
        verify/                    - Verify payment after checkout return
        admin/actions/             - Admin release / dispute resolution
        admin/disputes/            - Open disputes
        admin/pending-releases/    - Orders awaiting release
        webhooks/paystack/         - Paystack webhook endpoint (POST)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    # Authentication (simplejwt)
    path("auth/", include("authentication.urls")),
    # Escrow
    path("escrow/", include("escrow.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Escrow Admin"
admin.site.site_title = "Escrow Admin Portal"
admin.site.index_title = "Escrow Operations"
