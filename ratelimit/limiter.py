"""
ratelimit/limiter.py -- Sliding-window attempt counter keyed by action name.

Each key maps to an ordered list of {"timestamp", "count"} entries in local
storage. A check prunes entries older than the window, sums what is left and
either rejects (sum at or above the limit, nothing recorded) or appends a new
entry and accepts. Pruning happens lazily on read; nothing else deletes keys.

Failure policy:
  Any StorageError makes the check fail OPEN by default (action allowed).
  That trades strict throttling for availability: a broken local store must
  not lock a user out of signing in. Deployments that prefer the opposite set
  RATE_LIMIT_FAIL_CLOSED=true, and every such failure is logged either way.

Usage:
    limiter = RateLimiter(LocalStore())
    if not limiter.is_allowed("payment_attempt", limit=3):
        remaining = limiter.get_remaining_attempts("payment_attempt", limit=3)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from core.config import Settings, get_settings
from core.security_log import log_security_event
from storage.errors import StorageError

if TYPE_CHECKING:
    from storage.local import LocalStore

logger = logging.getLogger("honestinvoice.ratelimit")

_DEFAULT_WINDOW_SECONDS = 60 * 60
_KEY_PREFIX = "rate_limit_"


@dataclass(frozen=True)
class RateLimitRule:
    """A named limit: at most `limit` attempts per `window_seconds`."""

    limit: int
    window_seconds: int


def rules_from_settings(settings: Settings) -> dict[str, RateLimitRule]:
    """Build the named rule table for the sensitive actions we throttle."""
    return {
        "auth_attempt": RateLimitRule(settings.auth_attempts_per_hour, 60 * 60),
        "invoice_creation": RateLimitRule(settings.invoice_creation_per_hour, 60 * 60),
        "payment_attempt": RateLimitRule(settings.payment_attempts_per_hour, 60 * 60),
        "api_call": RateLimitRule(settings.api_calls_per_minute, 60),
    }


def storage_key(action: str, identifier: str | None = None) -> str:
    """Return the storage key for an action, optionally scoped by identifier."""
    if identifier:
        return f"{_KEY_PREFIX}{action}:{identifier.strip().lower()}"
    return f"{_KEY_PREFIX}{action}"


class RateLimiter:
    """Sliding-window limiter over a LocalStore."""

    def __init__(
        self,
        storage: LocalStore,
        *,
        fail_closed: bool | None = None,
        default_window_seconds: int = _DEFAULT_WINDOW_SECONDS,
        rules: dict[str, RateLimitRule] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        settings = get_settings()
        self._storage = storage
        self.fail_closed = settings.rate_limit_fail_closed if fail_closed is None else fail_closed
        self.default_window_seconds = default_window_seconds
        self.rules = rules if rules is not None else rules_from_settings(settings)
        self._clock = clock

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def is_allowed(
        self,
        action: str,
        limit: int,
        window_seconds: int | None = None,
        identifier: str | None = None,
    ) -> bool:
        """Record one attempt and return True, or return False without recording.

        Side effect on acceptance only: a rejected attempt writes nothing.
        """
        key = storage_key(action, identifier)
        window = self.default_window_seconds if window_seconds is None else window_seconds
        try:
            now = self._clock()
            entries = self._live_entries(key, window, now)
            if _total(entries) >= limit:
                return False
            entries.append({"timestamp": now, "count": 1})
            self._storage.set_item(key, entries)
            return True
        except StorageError as e:
            logger.error("Rate limiter storage error for %s: %s", key, e)
            return not self.fail_closed

    def get_remaining_attempts(
        self,
        action: str,
        limit: int,
        window_seconds: int | None = None,
        identifier: str | None = None,
    ) -> int:
        """Return how many attempts are left in the current window.

        Writes the pruned entry list back but never counts as an attempt.
        """
        key = storage_key(action, identifier)
        window = self.default_window_seconds if window_seconds is None else window_seconds
        try:
            stored = self._storage.get_item(key)
            if stored is None:
                return limit
            entries = _prune(stored, window, self._clock())
            if len(entries) != len(stored):
                self._storage.set_item(key, entries)
            return max(0, limit - _total(entries))
        except StorageError as e:
            logger.error("Rate limiter storage error for %s: %s", key, e)
            return 0 if self.fail_closed else limit

    def check(self, rule_name: str, identifier: str | None = None) -> bool:
        """Apply a named rule from the rule table. Logs a security event on rejection.

        Raises KeyError for an unknown rule name -- that is a programming
        error, not a throttling decision.
        """
        rule = self.rules[rule_name]
        allowed = self.is_allowed(rule_name, rule.limit, rule.window_seconds, identifier)
        if not allowed:
            log_security_event("RATE_LIMIT_HIT", action=rule_name, identifier=identifier)
        return allowed

    def remaining(self, rule_name: str, identifier: str | None = None) -> int:
        """get_remaining_attempts() for a named rule."""
        rule = self.rules[rule_name]
        return self.get_remaining_attempts(rule_name, rule.limit, rule.window_seconds, identifier)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _live_entries(self, key: str, window: int, now: float) -> list[dict]:
        stored = self._storage.get_item(key)
        if stored is None:
            return []
        return _prune(stored, window, now)


def _prune(entries, window: int, now: float) -> list[dict]:
    if not isinstance(entries, list):
        raise StorageError("rate limit entries are not a list")
    try:
        return [e for e in entries if now - float(e["timestamp"]) < window]
    except (KeyError, TypeError, ValueError) as e:
        raise StorageError(f"malformed rate limit entry: {e}") from e


def _total(entries: list[dict]) -> int:
    try:
        return sum(int(e.get("count", 1)) for e in entries)
    except (TypeError, ValueError) as e:
        raise StorageError(f"malformed rate limit count: {e}") from e
