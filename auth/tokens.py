"""
auth/tokens.py -- Session token minting and assertion payload decoding.

Security design decisions:
  Session tokens: python-jose with HS256. Tokens are signed with SECRET_KEY and
       carry the user id (sub), email, issue time and expiry. A persisted
       session is only accepted if its token verifies.

       decode_session_token() deliberately does NOT enforce "exp". The session
       core owns the clock (injectable for tests) and compares expiry itself,
       so signature checking and expiry checking stay separate concerns.

  Assertion payload: read_claimed_identity() peeks at the provider's ID token
       WITHOUT verifying it, only to learn which subject/email the client is
       claiming. Nothing read here is trusted -- the verifier re-derives both
       values from the provider and rejects any mismatch.

  SECRET_KEY: sourced from core.config.get_settings(). The Settings class
       validates the key at startup: dev mode (DEBUG=true) auto-generates a
       random key with a warning; production mode refuses to start without one.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from jose import JWTError, jwt

from auth.errors import InvalidAssertion
from auth.models import ClaimedIdentity
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


def create_session_token(user: User, issued_at: float, expires_at: float) -> str:
    """Encode a signed JWT binding the user id to the session window.

    Args:
        user:       The upserted user record.
        issued_at:  Epoch seconds when the session starts.
        expires_at: Epoch seconds when the session ends. Stored as an int
                    claim; the Session keeps the exact float.
    """
    payload = {
        "sub": user.id,
        "email": user.email,
        "iat": int(issued_at),
        "exp": int(expires_at),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_session_token(token: str) -> dict | None:
    """Verify the signature of a session token. Returns the payload or None.

    Returning None (rather than raising) keeps the caller simple: any token
    that fails here is treated as no session at all.
    """
    try:
        payload = jwt.decode(
            token,
            _settings.secret_key,
            algorithms=[_ALGORITHM],
            options={"verify_exp": False},
        )
    except JWTError:
        return None
    if "sub" not in payload or "exp" not in payload:
        return None
    return payload


# ---------------------------------------------------------------------------
# Provider assertion (unverified read)
# ---------------------------------------------------------------------------


def read_claimed_identity(assertion: str) -> ClaimedIdentity:
    """Extract the claimed subject/email/profile from an ID token payload.

    Raises InvalidAssertion if the assertion is not a decodable JWT or lacks
    a subject or email claim.
    """
    try:
        claims = jwt.get_unverified_claims(assertion)
    except JWTError as e:
        raise InvalidAssertion(f"undecodable assertion: {e}") from e
    subject = claims.get("sub")
    email = claims.get("email")
    if not subject or not email:
        raise InvalidAssertion("assertion is missing sub or email claim")
    return ClaimedIdentity(
        subject=str(subject),
        email=str(email),
        name=claims.get("name") or "",
        picture=claims.get("picture"),
    )
