"""
API request and response models for the HonestInvoice verification service.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import VerifiedIdentity

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class VerifyAssertionRequest(BaseModel):
    """Request body for POST /api/v1/auth/verify-assertion.

    assertion is the provider's ID token, forwarded unparsed. The claimed
    values are what the client read from it; the verifier checks them against
    the provider's own answer.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    assertion: str = Field(min_length=1, max_length=8192)
    claimed_subject: str = Field(min_length=1, max_length=255)
    claimed_email: str = Field(min_length=3, max_length=320)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class VerifiedUser(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str
    avatar: Optional[str] = None

    @classmethod
    def from_identity(cls, identity: VerifiedIdentity) -> "VerifiedUser":
        """Build the wire shape from the verifier's domain result."""
        return cls(id=identity.subject, email=identity.email, name=identity.name, avatar=identity.picture)


class VerifyAssertionResponse(BaseModel):
    """200 response for POST /api/v1/auth/verify-assertion."""

    model_config = ConfigDict(frozen=True)

    verified: bool = True
    user: VerifiedUser


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
