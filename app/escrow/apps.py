"""
Escrow app configuration.

This app provides the escrow order lifecycle:
- Ledger models (orders, disputes, webhook log, audit trail)
- Fee calculation
- State machine engine with race-safe conditional updates
- Paystack checkout, webhook and verification
- Admin settlement
"""

from django.apps import AppConfig


class EscrowConfig(AppConfig):
    """Configuration for the escrow application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "escrow"
    verbose_name = "Escrow"

    def ready(self):
        # Registers webhook handlers in WEBHOOK_HANDLERS
        from escrow.webhooks import handlers  # noqa: F401
