"""
Django signals for the escrow app.

escrow_status_changed is sent after the transaction that changed an
order's status commits. Notification delivery (email, push, chat) lives
outside this app and subscribes here.

Signal kwargs:
    order: EscrowOrder after the change
    from_status: Status before the change
    to_status: Status after the change
    actor: User who caused the change, or None for webhook/system

Usage:
    from django.dispatch import receiver
    from escrow.signals import escrow_status_changed

    @receiver(escrow_status_changed)
    def notify_parties(sender, order, from_status, to_status, actor, **kwargs):
        ...
"""

from __future__ import annotations

import logging

from django.dispatch import Signal

logger = logging.getLogger(__name__)

escrow_status_changed = Signal()


def send_status_changed(order, from_status: str, to_status: str, actor=None) -> None:
    """Dispatch escrow_status_changed, logging receivers that fail."""
    responses = escrow_status_changed.send_robust(
        sender=order.__class__,
        order=order,
        from_status=from_status,
        to_status=to_status,
        actor=actor,
    )
    for receiver, response in responses:
        if isinstance(response, Exception):
            logger.error(
                f"escrow_status_changed receiver failed: {receiver!r}",
                extra={"order_id": str(order.pk), "to_status": to_status},
                exc_info=response,
            )
