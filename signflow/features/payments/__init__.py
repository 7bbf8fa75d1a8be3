"""
Payments feature.

Payments are created PENDING against a document and then processed once
through a payment gateway, ending COMPLETED or FAILED.
"""
