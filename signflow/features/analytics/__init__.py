"""
Analytics feature.

Read-only aggregates over documents, payments, users and coupons. Registered
last since it reads every other feature's tables.
"""
