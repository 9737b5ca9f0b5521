"""
auth/session.py -- Session/Auth Core: the single source of truth for "who is signed in".

State machine:
  SignedOut --(verified assertion)--> Authenticated
  Authenticated --(sign_out() or lazy expiry)--> SignedOut

"Pending" is a UI concern and never part of this state.

Concurrency model:
  Everything runs on one asyncio event loop; no locks. I/O (verification,
  backend upsert) suspends sign_in_with_assertion() without blocking other
  operations, and continuations resume in completion order, not issue order.
  A slow verification started before a sign-out could therefore resolve
  after it. Every committed transition bumps self._epoch; a sign-in compares
  the epoch it started under against the current one before the upsert and
  again before committing, and discards its result if anything changed.
  Staleness is detected, not cancelled.

  Two concurrent sign-ins for the same subject are not mutually excluded.
  Whichever commits first wins; the other is discarded as stale.

Persistence:
  The session is stored under one local storage key as JSON (user, token,
  expiry). On construction it is restored only if the expiry is still in the
  future AND the signed token verifies and matches the stored user/expiry --
  a hand-edited storage file cannot mint a session.

Error policy:
  Nothing raises out of this class. sign_in_with_assertion() returns an
  AuthResult; verification, stale, storage and backend failures all surface
  as AuthenticationFailed with one generic message. RateLimited is reported
  separately with the remaining-attempts count.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable

from sqlalchemy.exc import SQLAlchemyError

from auth.client import AssertionVerifier, HttpVerifierClient
from auth.errors import AuthenticationFailed, AuthError, RateLimited, UpstreamUnavailable, VerificationError
from auth.models import AuthResult, Session, User
from auth.store import UserStore
from auth.tokens import create_session_token, decode_session_token, read_claimed_identity
from core.config import Settings, get_settings
from core.security_log import log_security_event
from ratelimit.limiter import RateLimiter
from storage.errors import StorageError
from storage.local import LocalStore

logger = logging.getLogger("honestinvoice.auth")

SESSION_STORAGE_KEY = "custom_auth_session"

AuthStateListener = Callable[[Session | None], None]


class StaleSignIn(Exception):
    """A committed transition happened while this sign-in was in flight."""


class SessionManager:
    """Owns session creation, expiry, persistence and change notification.

    Usage:
        manager = SessionManager(HttpVerifierClient(url), UserStore(), LocalStore())
        unsubscribe = manager.on_auth_state_change(lambda s: print(s and s.user.email))
        result = await manager.sign_in_with_assertion(credential)
        if result.ok:
            ...
        manager.sign_out()
        unsubscribe()
    """

    def __init__(
        self,
        verifier: AssertionVerifier,
        backend: UserStore,
        storage: LocalStore,
        *,
        settings: Settings | None = None,
        limiter: RateLimiter | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._verifier = verifier
        self._backend = backend
        self._storage = storage
        self._settings = settings or get_settings()
        self._limiter = limiter
        self._clock = clock
        self._session: Session | None = None
        self._listeners: list[AuthStateListener] = []
        self._epoch = 0
        self._pending: deque[Session | None] = deque()
        self._notifying = False
        self._load_session_from_storage()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> SessionManager:
        """Wire the production collaborators named in Settings.

        Verification goes over HTTP to the boundary service; the local store,
        backend store and rate limiter use their configured paths.
        """
        settings = settings or get_settings()
        storage = LocalStore(settings.local_store_path)
        return cls(
            HttpVerifierClient(settings.verification_base_url),
            UserStore(settings.backend_db_url),
            storage,
            settings=settings,
            limiter=RateLimiter(storage, fail_closed=settings.rate_limit_fail_closed),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_session(self) -> Session | None:
        return self._session

    def get_user(self) -> User | None:
        return self._session.user if self._session else None

    def is_authenticated(self) -> bool:
        """True iff a session exists and has not expired.

        Lazy expiry: an expired session is signed out as a side effect of
        this check, so subscribers hear about it here.
        """
        if self._session is None:
            return False
        if self._clock() >= self._session.expires_at:
            log_security_event("SESSION_EXPIRED", user_id=self._session.user.id, reason="max_age")
            self.sign_out()
            return False
        return True

    def should_refresh(self) -> bool:
        """True when authenticated and within the refresh threshold of expiry."""
        if not self.is_authenticated():
            return False
        return self._clock() > self._session.expires_at - self._settings.refresh_threshold_seconds

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def sign_in_with_assertion(self, assertion: str) -> AuthResult:
        """Verify an identity assertion and, on success, start a new session.

        Never raises. On any failure the current session (if any) is left
        exactly as it was.
        """
        started_epoch = self._epoch
        log_security_event("GOOGLE_AUTH_ATTEMPT")

        if self._limiter is not None and not self._limiter.check("auth_attempt"):
            remaining = self._limiter.remaining("auth_attempt")
            return AuthResult(user=None, error=RateLimited(remaining=remaining))

        try:
            claimed = read_claimed_identity(assertion)
            identity = await self._verifier.verify(assertion, claimed.subject, claimed.email)
            self._ensure_current(started_epoch)
            user = await self._upsert_user(identity.subject, identity.email, identity.name, identity.picture)
            self._ensure_current(started_epoch)

            now = self._clock()
            expires_at = now + self._settings.session_ttl_seconds
            session = Session(user=user, access_token=create_session_token(user, now, expires_at), expires_at=expires_at)
            self._save_session_to_storage(session)
        except VerificationError as e:
            log_security_event("AUTH_FAILED", reason=e.reason)
            return AuthResult(user=None, error=AuthenticationFailed())
        except RateLimited as e:
            log_security_event("RATE_LIMIT_HIT", action="verify_assertion")
            return AuthResult(user=None, error=e)
        except StaleSignIn:
            logger.info("Discarding sign-in result: session state changed while verification was in flight")
            return AuthResult(user=None, error=AuthenticationFailed())
        except (AuthError, StorageError) as e:
            log_security_event("GOOGLE_AUTH_ERROR", error=type(e).__name__)
            return AuthResult(user=None, error=AuthenticationFailed())
        except Exception as e:
            logger.exception("Unexpected error during sign-in")
            log_security_event("GOOGLE_AUTH_ERROR", error=type(e).__name__)
            return AuthResult(user=None, error=AuthenticationFailed())

        self._commit(session)
        log_security_event("GOOGLE_AUTH_SUCCESS", user_id=session.user.id)
        return AuthResult(user=session.user)

    def sign_out(self) -> None:
        """Clear the in-memory and persisted session and notify subscribers.

        A storage failure is logged but does not keep the user signed in.
        """
        user_id = self._session.user.id if self._session else None
        try:
            self._storage.remove_item(SESSION_STORAGE_KEY)
        except StorageError as e:
            logger.error("Could not clear persisted session: %s", e)
        self._commit(None)
        log_security_event("LOGOUT_SUCCESS", user_id=user_id)

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def on_auth_state_change(self, callback: AuthStateListener) -> Callable[[], None]:
        """Register callback for future transitions and return its unsubscribe handle.

        There is no replay: call get_session() once after subscribing to learn
        the state at mount time.
        """
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_current(self, started_epoch: int) -> None:
        if self._epoch != started_epoch:
            raise StaleSignIn()

    async def _upsert_user(self, subject: str, email: str, name: str, picture: str | None) -> User:
        try:
            return await asyncio.to_thread(self._backend.upsert_user_by_subject, subject, email, name, picture)
        except (SQLAlchemyError, OSError) as e:
            logger.error("Backend store unavailable during upsert: %s", e)
            raise UpstreamUnavailable() from e

    def _commit(self, session: Session | None) -> None:
        self._session = session
        self._epoch += 1
        self._pending.append(session)
        # A listener that causes a transition queues it; it is delivered
        # after the current batch completes.
        if self._notifying:
            return
        self._notifying = True
        try:
            while self._pending:
                self._notify_listeners(self._pending.popleft())
        finally:
            self._notifying = False

    def _notify_listeners(self, session: Session | None) -> None:
        # Copy so a listener that unsubscribes mid-notification does not skip the next one.
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception:
                logger.exception("Error in auth state listener")

    def _save_session_to_storage(self, session: Session) -> None:
        self._storage.set_item(SESSION_STORAGE_KEY, session.to_dict())

    def _load_session_from_storage(self) -> None:
        try:
            stored = self._storage.get_item(SESSION_STORAGE_KEY)
        except StorageError as e:
            logger.error("Error loading session from storage: %s", e)
            return
        if stored is None:
            return

        try:
            session = Session.from_dict(stored)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding unreadable persisted session: %s", e)
            self._clear_session_from_storage()
            return

        if self._clock() >= session.expires_at:
            logger.info("Persisted session for user %s has expired", session.user.id)
            self._clear_session_from_storage()
            return

        claims = decode_session_token(session.access_token)
        if claims is None or claims["sub"] != session.user.id or claims["exp"] != int(session.expires_at):
            log_security_event("SESSION_TAMPERED", user_id=session.user.id)
            self._clear_session_from_storage()
            return

        self._session = session

    def _clear_session_from_storage(self) -> None:
        try:
            self._storage.remove_item(SESSION_STORAGE_KEY)
        except StorageError as e:
            logger.error("Could not clear persisted session: %s", e)
