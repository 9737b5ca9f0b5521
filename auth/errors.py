"""
auth/errors.py -- Failure taxonomy for identity verification and sign-in.

Two families:

  VerificationError and its subclasses are raised inside the trust boundary
  by auth.verifier. Each carries a specific reason that is logged server-side
  only. Callers outside the boundary never see which check failed.

  AuthError and its subclasses are what the session core hands back to
  callers inside AuthResult.error. AuthenticationFailed deliberately has one
  fixed message; RateLimited is distinct so the UI can say "wait" instead of
  "try again".
"""

from __future__ import annotations

GENERIC_AUTH_MESSAGE = "Authentication failed."


# ---------------------------------------------------------------------------
# Caller-facing errors
# ---------------------------------------------------------------------------


class AuthError(Exception):
    """Base class for every failure the session core reports."""

    code = "auth_error"

    def __init__(self, message: str = GENERIC_AUTH_MESSAGE) -> None:
        super().__init__(message)
        self.message = message


class AuthenticationFailed(AuthError):
    code = "authentication_failed"


class UpstreamUnavailable(AuthError):
    """The verification service or backend store could not be reached.

    Surfaced to callers as AuthenticationFailed by the session core; kept as
    its own type so the HTTP client and the logs can tell the two apart.
    """

    code = "upstream_unavailable"


class RateLimited(AuthError):
    code = "rate_limited"

    def __init__(self, remaining: int = 0, message: str = "Too many attempts. Please wait before trying again.") -> None:
        super().__init__(message)
        self.remaining = remaining


# ---------------------------------------------------------------------------
# Verification failures (trust boundary only)
# ---------------------------------------------------------------------------


class VerificationError(Exception):
    """An assertion failed one of the verifier's checks."""

    reason = "verification_failed"

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail or self.reason)
        self.detail = detail


class InvalidAssertion(VerificationError):
    reason = "invalid_assertion"


class AudienceMismatch(VerificationError):
    reason = "audience_mismatch"


class Expired(VerificationError):
    reason = "expired"


class EmailUnverified(VerificationError):
    reason = "email_unverified"


class DataMismatch(VerificationError):
    reason = "data_mismatch"
