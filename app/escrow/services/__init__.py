"""
Escrow service layer.

- EscrowEngine: State transitions (raises escrow exceptions)
- CheckoutService: Order creation and payment initialization
- EscrowOrderService: Buyer/seller actions, lookups, payment verification
- EscrowAdminService: Admin settlement and work queues
"""

from escrow.services.admin_service import EscrowAdminService
from escrow.services.checkout_service import CheckoutResult, CheckoutService
from escrow.services.escrow_engine import EscrowEngine
from escrow.services.escrow_service import EscrowOrderService

__all__ = [
    "CheckoutResult",
    "CheckoutService",
    "EscrowAdminService",
    "EscrowEngine",
    "EscrowOrderService",
]
