"""
tests/test_verifier.py -- Unit tests for auth/verifier.py (IdentityVerifier).

The provider's tokeninfo endpoint is replaced with a MagicMock requests
session, so no network calls are made.

Coverage:
  - Happy path returns the provider-confirmed identity
  - Each check in order: introspection/issuer, audience, expiry,
    email_verified, claimed sub/email
  - End to end through the session core: an audience mismatch creates no user
"""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest
import requests

from auth.client import InProcessVerifier
from auth.errors import (
    AudienceMismatch,
    AuthenticationFailed,
    DataMismatch,
    EmailUnverified,
    Expired,
    InvalidAssertion,
)
from auth.session import SessionManager
from auth.verifier import IdentityVerifier

_CLIENT_ID = "123.apps.googleusercontent.com"
_NOW = 1_700_000_000.0


def _tokeninfo(**overrides) -> dict:
    info = {
        "iss": "https://accounts.google.com",
        "aud": _CLIENT_ID,
        "sub": "google-sub-1",
        "email": "ada@example.com",
        "email_verified": "true",
        "exp": str(int(_NOW) + 600),
        "name": "Ada Lovelace",
        "picture": "https://example.com/ada.png",
    }
    info.update(overrides)
    return info


def _verifier(payload=None, *, error: Exception | None = None, client_id: str = _CLIENT_ID) -> IdentityVerifier:
    session = MagicMock(spec=requests.Session)
    if error is not None:
        session.get.side_effect = error
    else:
        resp = MagicMock()
        resp.json.return_value = payload if payload is not None else _tokeninfo()
        session.get.return_value = resp
    return IdentityVerifier(
        client_id=client_id,
        tokeninfo_url="https://oauth2.googleapis.com/tokeninfo",
        issuers=["accounts.google.com", "https://accounts.google.com"],
        session=session,
        clock=lambda: _NOW,
    )


class TestVerify:
    def test_valid_assertion(self):
        identity = _verifier().verify("id-token", "google-sub-1", "ada@example.com")
        assert identity.subject == "google-sub-1"
        assert identity.email == "ada@example.com"
        assert identity.name == "Ada Lovelace"
        assert identity.picture == "https://example.com/ada.png"

    def test_sends_assertion_to_tokeninfo(self):
        verifier = _verifier()
        verifier.verify("id-token", "google-sub-1", "ada@example.com")
        _, kwargs = verifier._session.get.call_args
        assert kwargs["params"] == {"id_token": "id-token"}
        assert kwargs["timeout"] == 10

    def test_boolean_email_verified_accepted(self):
        verifier = _verifier(_tokeninfo(email_verified=True))
        assert verifier.verify("id-token", "google-sub-1", "ada@example.com").subject == "google-sub-1"


class TestChecks:
    def test_provider_rejects_assertion(self):
        with pytest.raises(InvalidAssertion):
            _verifier(error=requests.HTTPError("400 Bad Request")).verify("bad", "google-sub-1", "ada@example.com")

    def test_provider_unreachable(self):
        with pytest.raises(InvalidAssertion):
            _verifier(error=requests.ConnectionError("down")).verify("x", "google-sub-1", "ada@example.com")

    def test_empty_assertion(self):
        with pytest.raises(InvalidAssertion):
            _verifier().verify("", "google-sub-1", "ada@example.com")

    def test_unknown_issuer(self):
        with pytest.raises(InvalidAssertion):
            _verifier(_tokeninfo(iss="https://evil.example.com")).verify("x", "google-sub-1", "ada@example.com")

    def test_audience_mismatch(self):
        with pytest.raises(AudienceMismatch):
            _verifier(_tokeninfo(aud="someone-else")).verify("x", "google-sub-1", "ada@example.com")

    def test_unconfigured_client_id_never_matches(self):
        with pytest.raises(AudienceMismatch):
            _verifier(_tokeninfo(aud=""), client_id="").verify("x", "google-sub-1", "ada@example.com")

    def test_expired(self):
        with pytest.raises(Expired):
            _verifier(_tokeninfo(exp=str(int(_NOW)))).verify("x", "google-sub-1", "ada@example.com")

    def test_missing_exp(self):
        info = _tokeninfo()
        del info["exp"]
        with pytest.raises(Expired):
            _verifier(info).verify("x", "google-sub-1", "ada@example.com")

    def test_email_unverified(self):
        with pytest.raises(EmailUnverified):
            _verifier(_tokeninfo(email_verified="false")).verify("x", "google-sub-1", "ada@example.com")

    def test_subject_mismatch(self):
        with pytest.raises(DataMismatch):
            _verifier().verify("x", "someone-else", "ada@example.com")

    def test_email_mismatch(self):
        with pytest.raises(DataMismatch):
            _verifier().verify("x", "google-sub-1", "eve@example.com")

    def test_audience_checked_before_email(self):
        payload = _tokeninfo(aud="someone-else", email_verified="false")
        with pytest.raises(AudienceMismatch):
            _verifier(payload).verify("x", "google-sub-1", "ada@example.com")


def test_audience_mismatch_creates_no_user(user_store, local_store, clock, make_assertion):
    verifier = _verifier(_tokeninfo(aud="another-app"))
    manager = SessionManager(InProcessVerifier(verifier), user_store, local_store, clock=clock)

    result = asyncio.run(manager.sign_in_with_assertion(make_assertion()))

    assert isinstance(result.error, AuthenticationFailed)
    assert manager.get_session() is None
    assert user_store.count_users() == 0
