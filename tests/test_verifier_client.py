"""
tests/test_verifier_client.py -- Unit tests for auth/client.py (HttpVerifierClient).

The verification service is replaced with httpx.MockTransport.
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from auth.client import VERIFY_PATH, HttpVerifierClient
from auth.errors import RateLimited, UpstreamUnavailable, VerificationError

_OK_BODY = {
    "verified": True,
    "user": {"id": "google-sub-1", "email": "ada@example.com", "name": "Ada", "avatar": "https://example.com/a.png"},
}


def _client(handler) -> HttpVerifierClient:
    return HttpVerifierClient("http://verifier.test/", transport=httpx.MockTransport(handler))


def _verify(client: HttpVerifierClient):
    return asyncio.run(client.verify("id-token", "google-sub-1", "ada@example.com"))


def test_success_maps_identity():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_OK_BODY)

    identity = _verify(_client(handler))

    assert seen["path"] == VERIFY_PATH
    assert seen["body"] == {
        "assertion": "id-token",
        "claimed_subject": "google-sub-1",
        "claimed_email": "ada@example.com",
    }
    assert identity.subject == "google-sub-1"
    assert identity.email == "ada@example.com"
    assert identity.name == "Ada"
    assert identity.picture == "https://example.com/a.png"


@pytest.mark.parametrize("status", [400, 401])
def test_rejection_is_verification_error(status):
    with pytest.raises(VerificationError):
        _verify(_client(lambda r: httpx.Response(status, json={"error": {"code": "x", "message": "y"}})))


def test_429_is_rate_limited():
    with pytest.raises(RateLimited):
        _verify(_client(lambda r: httpx.Response(429)))


def test_server_error_is_upstream_unavailable():
    with pytest.raises(UpstreamUnavailable):
        _verify(_client(lambda r: httpx.Response(503)))


def test_transport_error_is_upstream_unavailable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(UpstreamUnavailable):
        _verify(_client(handler))


def test_unverified_body_is_verification_error():
    with pytest.raises(VerificationError):
        _verify(_client(lambda r: httpx.Response(200, json={"verified": False})))


def test_malformed_body_is_upstream_unavailable():
    with pytest.raises(UpstreamUnavailable):
        _verify(_client(lambda r: httpx.Response(200, content=b"<html>")))
    with pytest.raises(UpstreamUnavailable):
        _verify(_client(lambda r: httpx.Response(200, json={"verified": True, "user": {"id": "x"}})))
