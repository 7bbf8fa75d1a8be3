"""
Users feature.

Administrative management of accounts. Shares the User model with the auth
feature; self-service sign-up lives there.
"""
