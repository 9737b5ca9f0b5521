"""storage/errors.py -- Exceptions raised by the local storage layer."""


class StorageError(Exception):
    """Local persistence failed (unreadable, unwritable, or corrupt value).

    Callers decide the degradation policy: the session core falls back to
    the signed-out state, the rate limiter fails open or closed.
    """
