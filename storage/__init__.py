"""storage/ -- Client-local durable key/value storage for HonestInvoice auth.

Layer rule: storage/ imports only stdlib. It does NOT import from api/,
auth/, billing/, ratelimit/, or core/. Every other layer may import it.
"""
