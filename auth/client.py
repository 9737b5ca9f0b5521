"""
auth/client.py -- Async adapters the session core uses to reach the verifier.

The session core only knows the AssertionVerifier protocol. Two adapters:

  HttpVerifierClient -- POSTs to the verification boundary service (api/)
      over httpx. This is the normal deployment: the verifier runs on the
      server, the session core on the client.

  InProcessVerifier -- wraps an IdentityVerifier directly, for deployments
      where the session core itself runs inside the trust boundary (and for
      end-to-end tests). The blocking HTTP introspection runs in a worker
      thread so the event loop keeps serving other operations.

Response mapping (HttpVerifierClient):
  200        -> VerifiedIdentity
  400 / 401  -> VerificationError (the boundary never says which check failed)
  429        -> RateLimited
  other / transport failure -> UpstreamUnavailable
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import httpx

from auth.errors import RateLimited, UpstreamUnavailable, VerificationError
from auth.models import VerifiedIdentity
from auth.verifier import IdentityVerifier

logger = logging.getLogger("honestinvoice.auth.client")

VERIFY_PATH = "/api/v1/auth/verify-assertion"


class AssertionVerifier(Protocol):
    async def verify(self, assertion: str, claimed_subject: str, claimed_email: str) -> VerifiedIdentity: ...


class HttpVerifierClient:
    def __init__(self, base_url: str, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def verify(self, assertion: str, claimed_subject: str, claimed_email: str) -> VerifiedIdentity:
        body = {"assertion": assertion, "claimed_subject": claimed_subject, "claimed_email": claimed_email}
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.post(VERIFY_PATH, json=body)
        except httpx.HTTPError as e:
            logger.warning("Verification service unreachable: %s", e)
            raise UpstreamUnavailable() from e

        if resp.status_code in (400, 401):
            raise VerificationError(f"verification service returned {resp.status_code}")
        if resp.status_code == 429:
            raise RateLimited(remaining=0)
        if resp.status_code != 200:
            logger.warning("Verification service returned unexpected status %d", resp.status_code)
            raise UpstreamUnavailable()

        try:
            data = resp.json()
            if not data.get("verified"):
                raise VerificationError("verification service did not confirm the assertion")
            user = data["user"]
            return VerifiedIdentity(
                subject=str(user["id"]),
                email=user["email"],
                name=user.get("name") or "",
                picture=user.get("avatar"),
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Verification service returned a malformed body: %s", e)
            raise UpstreamUnavailable() from e


class InProcessVerifier:
    def __init__(self, verifier: IdentityVerifier) -> None:
        self._verifier = verifier

    async def verify(self, assertion: str, claimed_subject: str, claimed_email: str) -> VerifiedIdentity:
        return await asyncio.to_thread(self._verifier.verify, assertion, claimed_subject, claimed_email)
