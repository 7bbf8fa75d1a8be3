"""
Identity feature.

Chilean RUT check-digit validation, one-time codes sent to a phone, and a
simulated biometric check.
"""
