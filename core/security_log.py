"""
core/security_log.py -- Structured security event logging.

Every auth-relevant event (sign-in attempt, success, failure, sign-out, idle
expiry, rate-limit hit) goes through log_security_event() so operators can
grep a single logger name. Details are logged as key=value pairs.

Never pass assertions, session tokens, or other bearer credentials as
details -- anything logged here may end up in shared log storage.

Layer rule: core/ is the kernel. No imports from the other packages.
"""

import logging

logger = logging.getLogger("honestinvoice.security")


def log_security_event(event: str, **details) -> None:
    """Emit a [SECURITY] warning for the named event."""
    if details:
        rendered = " ".join(f"{k}={v}" for k, v in sorted(details.items()))
        logger.warning("[SECURITY] %s %s", event, rendered)
    else:
        logger.warning("[SECURITY] %s", event)
