"""
Escrow app for marketplace purchases paid through Paystack.

This app handles:
- Escrow order creation with fee calculation and payment initialization
- Payment confirmation via signed webhooks and return-URL verification
- The shipment / delivery / dispute lifecycle
- Administrator release and refund decisions

Related apps:
    - authentication: User model (buyers, sellers, administrators)
    - listings: Products that escrow orders are created from

Usage:
    from escrow.services import CheckoutService, EscrowEngine

    result = CheckoutService.create_escrow_order(buyer, product_id=product.id)
    order = EscrowEngine.ship(order, seller, shipment_reference="GIG-123")
"""
