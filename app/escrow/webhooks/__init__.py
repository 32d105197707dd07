"""
Webhook handling for Paystack payment events.

Webhooks are verified against the raw body, stored idempotently and
processed inline; failures are retried by Celery.

Usage:
    # In urls.py
    from escrow.webhooks.views import paystack_webhook

    urlpatterns = [
        path("webhooks/paystack/", paystack_webhook, name="paystack-webhook"),
    ]
"""
