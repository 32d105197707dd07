"""
Payment gateway adapters.

All outbound Paystack calls and webhook signature checks go through
PaystackAdapter so timeouts, error translation and logging stay
consistent.

Usage:
    from escrow.adapters import PaystackAdapter, InitializeTransactionParams
"""

from escrow.adapters.paystack_adapter import (
    IdempotencyKeyGenerator,
    InitializeTransactionParams,
    InitializeTransactionResult,
    PaystackAdapter,
    VerifyTransactionResult,
    backoff_delay,
    is_retryable_paystack_error,
)

__all__ = [
    "IdempotencyKeyGenerator",
    "InitializeTransactionParams",
    "InitializeTransactionResult",
    "PaystackAdapter",
    "VerifyTransactionResult",
    "backoff_delay",
    "is_retryable_paystack_error",
]
