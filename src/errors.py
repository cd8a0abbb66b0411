"""Error taxonomy for WebForge runs.

Every failure that can end a run is funnelled through :func:`classify_error`,
which turns it into one of a handful of user-facing categories.  Upstream
clients (Gemini, E2B) tag their exceptions with an :class:`ErrorKind` where
they can tell what went wrong; anything else is classified by substring
matching on the message.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Structured category attached to upstream failures."""

    PRECONDITION = "precondition"
    SANDBOX_EXPIRED = "sandbox_expired"
    TIMEOUT = "timeout"
    AUTH = "auth"
    QUOTA = "quota"
    TRANSPORT = "transport"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.SANDBOX_EXPIRED: (
        "The sandbox session expired or could not be found. Please try generating again."
    ),
    ErrorKind.TIMEOUT: (
        "The operation timed out. Please try again, perhaps with a simpler description."
    ),
    ErrorKind.AUTH: "Authentication failed. Please check your Google AI and E2B API keys.",
    ErrorKind.QUOTA: "API quota exceeded. Please wait a moment and try again.",
    ErrorKind.CANCELLED: "Generation cancelled.",
}


class WebForgeError(Exception):
    """Base class for errors raised by WebForge components."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.UNKNOWN) -> None:
        self.kind = kind
        super().__init__(message)


class PreconditionError(WebForgeError):
    """Raised before any work starts when a required credential is missing."""

    def __init__(self, message: str) -> None:
        super().__init__(message, kind=ErrorKind.PRECONDITION)


class ExportError(WebForgeError):
    """Raised when the project archive cannot be produced."""


# Ordered: the first matching rule wins.
_SUBSTRING_RULES: list[tuple[ErrorKind, tuple[str, ...]]] = [
    (ErrorKind.QUOTA, ("quota", "rate limit", "429", "resource exhausted", "resource_exhausted")),
    (ErrorKind.AUTH, ("401", "403", "unauthorized", "authentication", "api key", "permission denied")),
    (ErrorKind.TIMEOUT, ("timeout", "timed out")),
]


def _is_expired_sandbox(message: str) -> bool:
    return "sandbox" in message and any(
        marker in message for marker in ("not found", "expired", "was killed", "not running")
    )


def infer_kind(message: str) -> ErrorKind:
    """Guess an :class:`ErrorKind` from a raw error message."""
    lowered = message.lower()
    if _is_expired_sandbox(lowered):
        return ErrorKind.SANDBOX_EXPIRED
    for kind, needles in _SUBSTRING_RULES:
        if any(needle in lowered for needle in needles):
            return kind
    return ErrorKind.UNKNOWN


def classify_error(exc: BaseException) -> tuple[ErrorKind, str]:
    """Map an exception to ``(kind, user_facing_message)``.

    Structured kinds supplied by our own clients take precedence.  Untagged
    errors (or ones tagged ``UNKNOWN``/``TRANSPORT``) fall back to substring
    heuristics.  When nothing matches, the raw message is returned so the
    user still sees what happened.
    """
    raw = str(exc) or exc.__class__.__name__
    kind = getattr(exc, "kind", None)
    if not isinstance(kind, ErrorKind) or kind in (ErrorKind.UNKNOWN, ErrorKind.TRANSPORT):
        inferred = infer_kind(raw)
        if inferred is not ErrorKind.UNKNOWN or not isinstance(kind, ErrorKind):
            kind = inferred

    return kind, USER_MESSAGES.get(kind, raw)
