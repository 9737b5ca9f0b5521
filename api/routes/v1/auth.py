"""
api/routes/v1/auth.py -- Identity verification boundary endpoint.

Routes:
  POST /api/v1/auth/verify-assertion  -- verify a provider ID token (public)

Security:
  Rate-limited per IP (VERIFY_RATE_LIMIT, default 10/minute). The client-side
  limiter cannot be trusted, so the boundary enforces its own.
  Every verification failure returns the same 401 body. The specific reason
  (audience, expiry, unverified email, ...) is logged by the verifier only.
  Malformed bodies return 400 via the validation handler in api/main.py.
  Cache-Control: no-store on every response -- identity data must not be cached.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, VerifiedUser, VerifyAssertionRequest, VerifyAssertionResponse
from auth.errors import GENERIC_AUTH_MESSAGE, VerificationError
from auth.verifier import IdentityVerifier
from core.config import get_settings

# Auth policy:
# - POST /api/v1/auth/verify-assertion: public -- this IS the authentication step
router = APIRouter()


@limiter.limit(get_settings().verify_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/verify-assertion", response_model=VerifyAssertionResponse)
def verify_assertion(request: Request, body: VerifyAssertionRequest) -> JSONResponse:
    """Verify an identity assertion against the provider and return the confirmed identity.

    Sync handler on purpose: the verifier's introspection call is blocking
    (requests), so FastAPI runs this in its thread pool.
    """
    verifier: IdentityVerifier = request.app.state.verifier
    try:
        identity = verifier.verify(body.assertion, body.claimed_subject, body.claimed_email)
    except VerificationError:
        resp = JSONResponse(
            status_code=401,
            content=ErrorResponse(
                error=ErrorDetail(code="authentication_failed", message=GENERIC_AUTH_MESSAGE)
            ).model_dump(exclude_none=True),
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    resp = JSONResponse(
        status_code=200,
        content=VerifyAssertionResponse(user=VerifiedUser.from_identity(identity)).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp
