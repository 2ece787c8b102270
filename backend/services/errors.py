"""
Relay error taxonomy - shared by the relay router and the chat client
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Failure categories surfaced to callers"""

    UNAUTHENTICATED = "unauthenticated"
    RATE_LIMITED = "rate_limited"
    QUOTA_EXHAUSTED = "quota_exhausted"
    UPSTREAM_ERROR = "upstream_error"
    TRANSPORT_FAILURE = "transport_failure"


class RelayError(Exception):
    """Base error for the chat relay"""

    kind: ErrorKind = ErrorKind.UPSTREAM_ERROR
    status_code: int = 500
    default_message: str = "AI gateway error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class Unauthenticated(RelayError):
    kind = ErrorKind.UNAUTHENTICATED
    status_code = 401
    default_message = "Not authenticated"


class RateLimited(RelayError):
    kind = ErrorKind.RATE_LIMITED
    status_code = 429
    default_message = "Rate limits exceeded, please try again later."


class QuotaExhausted(RelayError):
    kind = ErrorKind.QUOTA_EXHAUSTED
    status_code = 402
    default_message = "Payment required, please add funds."


class UpstreamError(RelayError):
    kind = ErrorKind.UPSTREAM_ERROR
    status_code = 500
    default_message = "AI gateway error"


class TransportFailure(RelayError):
    """Network-level failure while talking to the relay or upstream"""

    kind = ErrorKind.TRANSPORT_FAILURE
    status_code = 502
    default_message = "Connection to AI gateway failed"


def error_for_status(status: int, detail: str | None = None) -> RelayError:
    """Map a non-success HTTP status to the matching relay error"""
    if status in (401, 403):
        return Unauthenticated(detail)
    if status == 429:
        return RateLimited(detail)
    if status == 402:
        return QuotaExhausted(detail)
    return UpstreamError(detail or f"AI gateway error (HTTP {status})")
