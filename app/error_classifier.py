"""
Scrobbler error kinds and what to do about them.

Every ErrorKind maps to exactly one ErrorClass:

- TERMINAL: the scrobbler won't send anything more; the user has to act.
- NEEDS_REAUTH: get a fresh session (handshake), then carry on.
- TRANSIENT: the batch stays cached and goes out again on the next submit().
- PROGRAMMING_ERROR: a kind nobody handled. Reported, never ignored.
"""

from __future__ import annotations
import enum

import pylast


class ErrorKind(enum.Enum):
    BANNED_CLIENT_VERSION = "banned_client_version"
    INVALID_SESSION_KEY = "invalid_session_key"
    BAD_TIME = "bad_time"
    THREE_HARD_FAILURES = "three_hard_failures"
    BAD_SESSION = "bad_session"
    HARD_FAILURE = "hard_failure"
    UNRECOGNIZED = "unrecognized"


class ErrorClass(enum.Enum):
    TERMINAL = "terminal"
    NEEDS_REAUTH = "needs_reauth"
    TRANSIENT = "transient"
    PROGRAMMING_ERROR = "programming_error"


class ProgrammingError(RuntimeError):
    """An error kind reached the scrobbler that it has no handling for."""


_CLASSES = {
    ErrorKind.BANNED_CLIENT_VERSION: ErrorClass.TERMINAL,
    ErrorKind.INVALID_SESSION_KEY: ErrorClass.TERMINAL,
    ErrorKind.BAD_TIME: ErrorClass.TERMINAL,
    ErrorKind.THREE_HARD_FAILURES: ErrorClass.NEEDS_REAUTH,
    ErrorKind.BAD_SESSION: ErrorClass.NEEDS_REAUTH,
    ErrorKind.HARD_FAILURE: ErrorClass.TRANSIENT,
    ErrorKind.UNRECOGNIZED: ErrorClass.PROGRAMMING_ERROR,
}

# Last.fm web service error codes
_SERVICE_CODES = {
    pylast.STATUS_INVALID_SK: ErrorKind.BAD_SESSION,
    pylast.STATUS_AUTH_FAILED: ErrorKind.INVALID_SESSION_KEY,
    pylast.STATUS_TOKEN_UNAUTHORIZED: ErrorKind.INVALID_SESSION_KEY,
    pylast.STATUS_TOKEN_EXPIRED: ErrorKind.INVALID_SESSION_KEY,
    pylast.STATUS_INVALID_API_KEY: ErrorKind.BANNED_CLIENT_VERSION,
    pylast.STATUS_API_KEY_SUSPENDED: ErrorKind.BANNED_CLIENT_VERSION,
    pylast.STATUS_DEPRECATED: ErrorKind.BANNED_CLIENT_VERSION,
    pylast.STATUS_OPERATION_FAILED: ErrorKind.HARD_FAILURE,
    pylast.STATUS_OFFLINE: ErrorKind.HARD_FAILURE,
    pylast.STATUS_TEMPORARILY_UNAVAILABLE: ErrorKind.HARD_FAILURE,
    pylast.STATUS_RATE_LIMIT_EXCEEDED: ErrorKind.HARD_FAILURE,
}


def classify(kind: ErrorKind) -> ErrorClass:
    try:
        return _CLASSES[kind]
    except KeyError:
        return ErrorClass.PROGRAMMING_ERROR


def kind_for_service_code(code: int | None, message: str = "") -> ErrorKind:
    """Translate a Last.fm `<error code=...>` into an ErrorKind."""
    if code is None:
        return ErrorKind.HARD_FAILURE
    if code == pylast.STATUS_INVALID_PARAMS and "timestamp" in message.lower():
        return ErrorKind.BAD_TIME
    return _SERVICE_CODES.get(code, ErrorKind.UNRECOGNIZED)


def is_blocking(error_class: ErrorClass) -> bool:
    """True when no more requests should go out until someone intervenes."""
    return error_class is not ErrorClass.TRANSIENT
