"""
Listings application.

Minimal product catalogue consumed by escrow checkout: a product knows
its price in kobo and who sells it (directly or through a business).
Search, browsing and media are handled elsewhere.
"""
