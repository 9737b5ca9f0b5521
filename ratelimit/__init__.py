"""ratelimit/ -- Client-side sliding-window rate limiting.

Layer rule: ratelimit/ imports only stdlib, core/ and storage/.
It does NOT import from api/, auth/, or billing/.

This limiter protects one client instance only. It is never a substitute for
server-side throttling -- the verification boundary in api/ carries its own
slowapi limit.
"""
