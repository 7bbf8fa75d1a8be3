"""
Platform administration feature.

Custom role catalog, customer subscriptions and platform-wide metrics for
administrators. Registered last since it reads users, payments and API token
usage.
"""
