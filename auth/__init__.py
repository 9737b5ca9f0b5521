"""auth/ -- Identity verification and session lifecycle for HonestInvoice.

Layer rule: auth/ imports only stdlib + third-party libraries + core/,
storage/, ratelimit/ and billing/ (for the subscription record type).
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
