"""billing/ -- Subscription tiers and feature entitlements.

Layer rule: billing/ imports only stdlib. It does NOT import from api/,
auth/, ratelimit/, or storage/. The subscription record is read through a
backend object passed in by the caller (auth.store.UserStore in production).

Nothing in this package talks to the payment processor. The tier it reads is
written by the external checkout/webhook collaborator.
"""
