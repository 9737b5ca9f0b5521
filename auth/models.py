"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; the store, verifier and session core do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from auth.errors import AuthError


@dataclass
class User:
    """A HonestInvoice account, keyed on the identity provider's subject.

    provider_subject is the provider's stable user id (Google "sub"). It is
    the upsert key: email and display name may change between sign-ins,
    the subject never does.
    """

    id: str
    email: str
    provider_subject: str
    name: str = ""
    picture: str | None = None  # avatar URL
    created_at: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> User:
        return cls(
            id=str(data["id"]),
            email=data["email"],
            provider_subject=data["provider_subject"],
            name=data.get("name") or "",
            picture=data.get("picture"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


@dataclass
class Session:
    """The current signed-in identity plus its validity window.

    expires_at is epoch seconds. A session is never mutated -- re-authentication
    replaces it wholesale.
    """

    user: User
    access_token: str
    expires_at: float

    def to_dict(self) -> dict:
        return {"user": self.user.to_dict(), "access_token": self.access_token, "expires_at": self.expires_at}

    @classmethod
    def from_dict(cls, data: dict) -> Session:
        return cls(
            user=User.from_dict(data["user"]),
            access_token=data["access_token"],
            expires_at=float(data["expires_at"]),
        )


@dataclass(frozen=True)
class ClaimedIdentity:
    """What the assertion says about itself, read without verification."""

    subject: str
    email: str
    name: str = ""
    picture: str | None = None


@dataclass(frozen=True)
class VerifiedIdentity:
    """Identity confirmed by the provider inside the trust boundary."""

    subject: str
    email: str
    name: str = ""
    picture: str | None = None


@dataclass
class AuthResult:
    """Normalized outcome of a sign-in: exactly one of user / error is set."""

    user: User | None = None
    error: AuthError | None = None

    @property
    def ok(self) -> bool:
        return self.user is not None and self.error is None
