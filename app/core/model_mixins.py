"""
Model mixins providing reusable functionality for Django models.

Available Mixins:
    UUIDPrimaryKeyMixin: Use UUID as primary key
"""

from __future__ import annotations

import uuid

from django.db import models


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use UUID as primary key instead of auto-increment integer.

    Escrow order ids double as the gateway payment reference, so they
    must be non-guessable and known before the row is inserted.

    Usage:
        class EscrowOrder(UUIDPrimaryKeyMixin, BaseModel):
            ...

        order = EscrowOrder(...)
        order.id  # already populated before save()
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True
