"""
Coupons feature.

Discount codes with optional expiry, usage cap and document-type restriction.
"""
