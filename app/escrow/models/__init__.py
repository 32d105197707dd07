"""
Escrow domain models.

- EscrowOrder: Escrow-backed purchase and its lifecycle status
- EscrowDispute: Buyer dispute against an order
- EscrowEvent: Append-only audit trail
- WebhookEvent: Gateway webhook record for idempotent processing
"""

from escrow.models.escrow_dispute import EscrowDispute
from escrow.models.escrow_event import EscrowEvent
from escrow.models.escrow_order import EscrowOrder, EscrowOrderQuerySet
from escrow.models.webhook_event import WebhookEvent

__all__ = [
    "EscrowDispute",
    "EscrowEvent",
    "EscrowOrder",
    "EscrowOrderQuerySet",
    "WebhookEvent",
]
