"""
Small request and formatting helpers shared across apps.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from django.http import HttpRequest


def get_client_ip(request: HttpRequest) -> str:
    """
    Extract client IP from request, handling proxies.

    Checks X-Forwarded-For header for proxy chains and falls back to
    REMOTE_ADDR.
    """
    x_forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
    if x_forwarded_for:
        # First IP in the chain is the original client
        return x_forwarded_for.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR", "")


def format_naira(amount_kobo: int) -> str:
    """
    Format a kobo amount as naira for human-readable messages.

    Example:
        format_naira(5_000_000)  # "₦50,000"
        format_naira(11_550)     # "₦115.50"
    """
    naira, kobo = divmod(int(amount_kobo), 100)
    if kobo:
        return f"₦{naira:,}.{kobo:02d}"
    return f"₦{naira:,}"
