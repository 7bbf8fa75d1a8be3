"""
API tokens feature.

Long-lived tokens for server-to-server integrations. Only a SHA-256 of each
token is stored; the plain token is shown once, on creation or regeneration.
Validation enforces expiry and a per-token requests-per-minute limit.
"""
