"""
Paystack API adapter for escrow payments.

This module provides the PaystackAdapter class which encapsulates all
Paystack API interactions. All gateway calls go through this adapter to
ensure consistent error handling, timeouts and observability.

Features:
- Explicit timeout on every HTTP call
- Automatic error translation to domain exceptions
- Backoff retries for transient failures of read-only calls (verify)
- Structured logging with timing metrics (the secret key is never logged)
- HMAC-SHA512 webhook signature verification over the raw body

Configuration (via settings):
- PAYSTACK_SECRET_KEY: API secret, also the webhook signing key
- PAYSTACK_BASE_URL: API base URL (default: https://api.paystack.co)
- PAYSTACK_API_TIMEOUT_SECONDS: HTTP timeout (default: 10)

Usage:
    from escrow.adapters import PaystackAdapter, InitializeTransactionParams

    result = PaystackAdapter.initialize_transaction(
        InitializeTransactionParams(
            email=buyer.email,
            amount_kobo=order.total_kobo,
            reference=order.payment_reference,
            callback_url=f"{settings.SITE_URL}/escrow/return?order={order.id}",
            metadata={"order_id": str(order.id)},
        )
    )
    result.authorization_url
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import random
import time
import uuid
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import requests
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from escrow.exceptions import (
    PaystackAPIUnavailableError,
    PaystackError,
    PaystackInvalidResponseError,
    PaystackTimeoutError,
    SignatureInvalidError,
)

# =============================================================================
# Data Types
# =============================================================================


@dataclass
class InitializeTransactionParams:
    """
    Parameters for initializing a Paystack hosted checkout.

    Attributes:
        email: Buyer email, required by Paystack
        amount_kobo: Amount to charge in kobo (order total)
        reference: Unique transaction reference
        callback_url: Where Paystack redirects the buyer after payment
        currency: ISO 4217 currency code (default: 'NGN')
        metadata: Key-value pairs echoed back in webhooks
    """

    email: str
    amount_kobo: int
    reference: str
    callback_url: str = ""
    currency: str = "NGN"
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate parameters after initialization."""
        if self.amount_kobo <= 0:
            raise ValueError("amount_kobo must be positive")
        if not self.email:
            raise ValueError("email is required")
        if not self.reference:
            raise ValueError("reference is required")

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "email": self.email,
            "amount": self.amount_kobo,
            "reference": self.reference,
            "currency": self.currency,
            "metadata": self.metadata,
        }
        if self.callback_url:
            payload["callback_url"] = self.callback_url
        return payload


@dataclass
class InitializeTransactionResult:
    """
    Result of a transaction initialization.

    Attributes:
        authorization_url: Hosted checkout URL for the buyer
        access_code: Paystack access code for inline checkout
        reference: Transaction reference echoed by Paystack
        raw_response: Full response 'data' object (for debugging)
    """

    authorization_url: str
    access_code: str
    reference: str
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class VerifyTransactionResult:
    """
    Result of a transaction verification.

    Attributes:
        reference: Transaction reference
        status: Paystack transaction status ('success', 'failed', 'abandoned', ...)
        amount_kobo: Amount actually charged in kobo
        currency: Currency of the charge
        paid_at: Paystack's paid_at timestamp string, when paid
        raw_response: Full response 'data' object
    """

    reference: str
    status: str
    amount_kobo: int
    currency: str = "NGN"
    paid_at: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def is_successful(self) -> bool:
        return self.status == "success"


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate stable keys for gateway metadata and retry correlation.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    Example:
        key = IdempotencyKeyGenerator.generate("initialize", order.id, attempt=2)
        # "initialize:550e8400-e29b-41d4-a716-446655440000:2:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]
        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Retry Logic Helpers
# =============================================================================


def is_retryable_paystack_error(error: Exception) -> bool:
    """True for transient gateway failures (network, timeout, 5xx)."""
    if isinstance(error, PaystackError):
        return getattr(error, "is_retryable", False)
    return False


def backoff_delay(attempt: int, base: float = 1.0, max_delay: float = 60.0) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        base: Base delay in seconds (default: 1.0)
        max_delay: Maximum delay in seconds (default: 60.0)

    Returns:
        Delay in seconds with 0-25% jitter added

    Example:
        # Attempt 0: 1.0 - 1.25 seconds
        # Attempt 2: 4.0 - 5.0 seconds
        delay = backoff_delay(attempt=2)
    """
    delay = min(base * (2**attempt), max_delay)
    jitter = delay * random.uniform(0, 0.25)
    return delay + jitter


# Attempts for idempotent calls (verify); initialize is never retried here
VERIFY_MAX_ATTEMPTS = 3


# =============================================================================
# Paystack Adapter
# =============================================================================


class PaystackAdapter:
    """
    Adapter for Paystack API operations.

    All methods are classmethods - no instance state is maintained.
    Safe to call from request threads and Celery workers.

    Usage:
        result = PaystackAdapter.initialize_transaction(params)
        result = PaystackAdapter.verify_transaction("ref_123")
        PaystackAdapter.verify_webhook_signature(request.body, signature)
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _secret_key() -> str:
        secret = getattr(settings, "PAYSTACK_SECRET_KEY", "")
        if not secret:
            raise ImproperlyConfigured("PAYSTACK_SECRET_KEY is not configured")
        return secret

    @staticmethod
    def _timeout() -> float:
        return float(getattr(settings, "PAYSTACK_API_TIMEOUT_SECONDS", 10))

    @staticmethod
    def _url(path: str) -> str:
        base = getattr(settings, "PAYSTACK_BASE_URL", "https://api.paystack.co")
        return f"{base.rstrip('/')}/{path.lstrip('/')}"

    @classmethod
    def _headers(cls) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {cls._secret_key()}",
            "Content-Type": "application/json",
        }

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Core Operations
    # =========================================================================

    @classmethod
    def initialize_transaction(
        cls,
        params: InitializeTransactionParams,
    ) -> InitializeTransactionResult:
        """
        Create a hosted checkout session.

        Args:
            params: Initialization parameters

        Returns:
            InitializeTransactionResult with authorization_url and access_code

        Raises:
            PaystackAPIUnavailableError: Network failure or 5xx
            PaystackTimeoutError: Request timed out
            PaystackInvalidResponseError: Rejected call or missing authorization_url
            ImproperlyConfigured: PAYSTACK_SECRET_KEY missing
        """
        log_context = {
            "operation": "initialize_transaction",
            "reference": params.reference,
            "amount_kobo": params.amount_kobo,
            "currency": params.currency,
        }
        data = cls._request("POST", "transaction/initialize", log_context, json=params.to_payload())

        authorization_url = data.get("authorization_url")
        if not authorization_url:
            cls.get_logger().error(
                "Paystack initialize response missing authorization_url",
                extra=log_context,
            )
            raise PaystackInvalidResponseError(
                "Paystack did not return an authorization URL",
                details={"reference": params.reference},
            )

        return InitializeTransactionResult(
            authorization_url=authorization_url,
            access_code=data.get("access_code") or "",
            reference=data.get("reference") or params.reference,
            raw_response=data,
        )

    @classmethod
    def verify_transaction(cls, reference: str) -> VerifyTransactionResult:
        """
        Look up the current state of a transaction.

        Raises:
            PaystackAPIUnavailableError: Network failure or 5xx
            PaystackTimeoutError: Request timed out
            PaystackInvalidResponseError: Rejected call or malformed body
        """
        log_context = {
            "operation": "verify_transaction",
            "reference": reference,
        }
        data = cls._request_with_retry(
            "GET",
            f"transaction/verify/{quote(reference, safe='')}",
            log_context,
            max_attempts=VERIFY_MAX_ATTEMPTS,
        )

        try:
            amount_kobo = int(data.get("amount") or 0)
        except (TypeError, ValueError):
            raise PaystackInvalidResponseError(
                "Paystack returned a non-numeric amount",
                details={"reference": reference, "amount": repr(data.get("amount"))},
            )

        return VerifyTransactionResult(
            reference=data.get("reference") or reference,
            status=str(data.get("status") or ""),
            amount_kobo=amount_kobo,
            currency=data.get("currency") or "NGN",
            paid_at=data.get("paid_at") or data.get("paidAt"),
            raw_response=data,
        )

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    @classmethod
    def compute_signature(cls, raw_body: bytes) -> str:
        """HMAC-SHA512 hex digest of the raw body keyed with the secret."""
        return hmac.new(cls._secret_key().encode(), raw_body, hashlib.sha512).hexdigest()

    @classmethod
    def verify_webhook_signature(cls, raw_body: bytes, signature: str | None) -> None:
        """
        Verify a webhook signature against the unparsed request body.

        Args:
            raw_body: Request body bytes exactly as received
            signature: x-paystack-signature header value

        Raises:
            SignatureInvalidError: Missing or mismatching signature
            ImproperlyConfigured: PAYSTACK_SECRET_KEY missing
        """
        expected = cls.compute_signature(raw_body)
        if not signature or not hmac.compare_digest(expected, signature.strip().lower()):
            cls.get_logger().warning(
                "Invalid Paystack webhook signature",
                extra={"has_signature": bool(signature), "body_length": len(raw_body)},
            )
            raise SignatureInvalidError("Invalid webhook signature")

    # =========================================================================
    # HTTP
    # =========================================================================

    @classmethod
    def _request(
        cls,
        method: str,
        path: str,
        log_context: dict[str, Any],
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Perform a call and return the response's 'data' object."""
        logger = cls.get_logger()
        headers = cls._headers()

        start_time = time.time()
        logger.info("Starting Paystack operation", extra=log_context)

        try:
            response = requests.request(
                method,
                cls._url(path),
                headers=headers,
                timeout=cls._timeout(),
                **kwargs,
            )
        except requests.RequestException as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_transport_error(e, log_context, duration_ms)
            raise  # Never reached, but satisfies type checker

        duration_ms = (time.time() - start_time) * 1000
        body = cls._parse_body(response)

        if response.status_code >= 500:
            logger.error(
                "Paystack server error",
                extra={**log_context, "status_code": response.status_code, "duration_ms": duration_ms},
            )
            raise PaystackAPIUnavailableError(
                "Paystack service error. Please retry.",
                paystack_message=body.get("message"),
                status_code=response.status_code,
            )

        if response.status_code >= 400 or not body.get("status"):
            logger.error(
                "Paystack rejected request",
                extra={
                    **log_context,
                    "status_code": response.status_code,
                    "paystack_message": body.get("message"),
                    "duration_ms": duration_ms,
                },
            )
            raise PaystackInvalidResponseError(
                body.get("message") or "Paystack rejected the request",
                paystack_message=body.get("message"),
                status_code=response.status_code,
            )

        data = body.get("data")
        if not isinstance(data, dict):
            logger.error(
                "Paystack response missing data object",
                extra={**log_context, "duration_ms": duration_ms},
            )
            raise PaystackInvalidResponseError(
                "Paystack response did not contain data",
                status_code=response.status_code,
            )

        logger.info(
            "Paystack operation completed",
            extra={**log_context, "status_code": response.status_code, "duration_ms": duration_ms},
        )
        return data

    @classmethod
    def _request_with_retry(
        cls,
        method: str,
        path: str,
        log_context: dict[str, Any],
        max_attempts: int,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Call _request, retrying transient failures with exponential backoff."""
        attempt = 0
        while True:
            try:
                return cls._request(method, path, log_context, **kwargs)
            except PaystackError as e:
                attempt += 1
                if attempt >= max_attempts or not is_retryable_paystack_error(e):
                    raise
                delay = backoff_delay(attempt - 1, base=0.5, max_delay=4.0)
                cls.get_logger().warning(
                    "Retrying Paystack operation",
                    extra={**log_context, "attempt": attempt, "delay_seconds": round(delay, 2)},
                )
                time.sleep(delay)

    @staticmethod
    def _parse_body(response: requests.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    @classmethod
    def _handle_transport_error(
        cls,
        error: requests.RequestException,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate requests exceptions to domain exceptions.

        Raises:
            PaystackTimeoutError: Connect or read timeout
            PaystackAPIUnavailableError: Any other transport failure
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, requests.Timeout):
            logger.error("Paystack request timed out", extra=log_context)
            raise PaystackTimeoutError("Paystack did not respond in time. Please retry.")

        logger.error(
            "Connection error to Paystack",
            extra=log_context,
            exc_info=True,
        )
        raise PaystackAPIUnavailableError("Could not connect to Paystack. Please retry.")
