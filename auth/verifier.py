"""
auth/verifier.py -- Identity assertion verification inside the trust boundary.

This module runs server-side only (api/ hosts it). The client cannot be
trusted to report its own identity, so every field the session core later
stores comes from the provider's own introspection of the assertion.

Checks, in order (first failure wins):
  1. Introspection   -- the provider's tokeninfo endpoint must accept the
                        assertion and report a configured issuer.  InvalidAssertion
  2. Audience        -- aud must equal our client id.               AudienceMismatch
  3. Expiry          -- exp must be in the future.                  Expired
  4. Email verified  -- the provider must confirm email ownership.  EmailUnverified
  5. Claimed data    -- sub and email must equal what the client
                        claimed.                                    DataMismatch

Security notes:
  Email verification is mandatory. An unverified email could be a victim's
  address added to an attacker-controlled account.

  The specific reason is logged here and never returned to the caller. The
  HTTP layer turns every VerificationError into the same 401 body.

  No retries: a failed verification is final for that assertion.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from typing import Any

import requests

from auth.errors import (
    AudienceMismatch,
    DataMismatch,
    EmailUnverified,
    Expired,
    InvalidAssertion,
    VerificationError,
)
from auth.models import VerifiedIdentity
from core.config import Settings

logger = logging.getLogger("honestinvoice.auth.verifier")

_TIMEOUT_SECONDS = 10


def _new_session() -> requests.Session:
    # 3 hops is generous for a known provider endpoint and limits redirect-chain SSRF.
    session = requests.Session()
    session.max_redirects = 3
    return session


def _is_true(value: Any) -> bool:
    # tokeninfo returns JSON strings ("true"); decoded ID tokens return booleans.
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


class IdentityVerifier:
    """Validates provider bearer assertions against the provider's tokeninfo endpoint.

    Usage:
        verifier = IdentityVerifier.from_settings(get_settings())
        identity = verifier.verify(credential, claimed_subject, claimed_email)
    """

    def __init__(
        self,
        client_id: str,
        tokeninfo_url: str,
        issuers: Iterable[str],
        session: requests.Session | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client_id = client_id
        self.tokeninfo_url = tokeninfo_url
        self.issuers = frozenset(issuers)
        self._session = session or _new_session()
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> IdentityVerifier:
        if not settings.google_client_id:
            logger.warning("GOOGLE_CLIENT_ID is not set -- every assertion will fail the audience check")
        return cls(
            client_id=settings.google_client_id,
            tokeninfo_url=settings.identity_tokeninfo_url,
            issuers=settings.identity_issuers,
        )

    def verify(self, assertion: str, claimed_subject: str, claimed_email: str) -> VerifiedIdentity:
        """Run every check and return the provider-confirmed identity.

        Raises a VerificationError subclass on the first failed check. The
        reason is logged at WARNING; the caller is expected to collapse it.
        """
        try:
            info = self._introspect(assertion)
            self._check_claims(info, claimed_subject, claimed_email)
        except VerificationError as e:
            logger.warning("Assertion rejected (%s): %s", e.reason, e.detail or "-")
            raise
        logger.info("Assertion verified for subject %s", info["sub"])
        return VerifiedIdentity(
            subject=str(info["sub"]),
            email=str(info["email"]),
            name=info.get("name") or "",
            picture=info.get("picture"),
        )

    def close(self) -> None:
        self._session.close()

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _introspect(self, assertion: str) -> dict[str, Any]:
        if not assertion:
            raise InvalidAssertion("empty assertion")
        try:
            resp = self._session.get(self.tokeninfo_url, params={"id_token": assertion}, timeout=_TIMEOUT_SECONDS)
            resp.raise_for_status()
            info = resp.json()
        except requests.RequestException as e:
            raise InvalidAssertion(f"tokeninfo request failed: {e}") from e
        except ValueError as e:
            raise InvalidAssertion("tokeninfo returned a non-JSON body") from e
        if not isinstance(info, dict):
            raise InvalidAssertion("tokeninfo returned an unexpected payload")
        if info.get("iss") not in self.issuers:
            raise InvalidAssertion(f"unexpected issuer {info.get('iss')!r}")
        return info

    def _check_claims(self, info: dict[str, Any], claimed_subject: str, claimed_email: str) -> None:
        if not self.client_id or info.get("aud") != self.client_id:
            raise AudienceMismatch(f"aud={info.get('aud')!r}")

        try:
            exp = int(info.get("exp"))
        except (TypeError, ValueError) as e:
            raise Expired("missing or non-numeric exp") from e
        if exp <= self._clock():
            raise Expired(f"exp={exp}")

        if not _is_true(info.get("email_verified", False)):
            raise EmailUnverified(f"email={info.get('email')!r}")

        if str(info.get("sub")) != claimed_subject or info.get("email") != claimed_email:
            raise DataMismatch("introspected sub/email differ from claimed values")
