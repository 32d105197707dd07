"""
State machine enums and transition source sets for escrow models.
"""

from escrow.state_machines.states import (
    CONFIRMABLE_STATES,
    DISPUTABLE_STATES,
    FUNDABLE_STATES,
    FUNDED_OR_LATER_STATES,
    LEGACY_FUNDED_ALIASES,
    REFUNDABLE_STATES,
    RELEASABLE_STATES,
    SHIPPABLE_STATES,
    TERMINAL_STATES,
    AdminDecisionType,
    DeliveryStatus,
    DisputeStatus,
    EscrowDisputeStatus,
    EscrowEventType,
    EscrowStatus,
    WebhookEventStatus,
    WebhookProvider,
    normalize_status,
)

__all__ = [
    "AdminDecisionType",
    "CONFIRMABLE_STATES",
    "DISPUTABLE_STATES",
    "DeliveryStatus",
    "DisputeStatus",
    "EscrowDisputeStatus",
    "EscrowEventType",
    "EscrowStatus",
    "FUNDABLE_STATES",
    "FUNDED_OR_LATER_STATES",
    "LEGACY_FUNDED_ALIASES",
    "REFUNDABLE_STATES",
    "RELEASABLE_STATES",
    "SHIPPABLE_STATES",
    "TERMINAL_STATES",
    "WebhookEventStatus",
    "WebhookProvider",
    "normalize_status",
]
