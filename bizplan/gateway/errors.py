"""Exceptions raised at the upstream boundary and surfaced to gateway callers."""

from __future__ import annotations

from bizplan.gateway.types import ErrorKind


class UpstreamError(Exception):
    """Raised by the upstream client for HTTP-status and transport failures."""

    def __init__(self, message: str, status_code: int = 0, timed_out: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.timed_out = timed_out


class GatewayError(Exception):
    """Terminal failure delivered to a submitter's completion handle."""

    kind: ErrorKind = ErrorKind.UPSTREAM_UNKNOWN

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "status_code": self.status_code,
            "message": self.message,
        }


class RateLimitExceeded(GatewayError):
    kind = ErrorKind.RATE_LIMIT_EXCEEDED


class PaymentRequired(GatewayError):
    kind = ErrorKind.PAYMENT_REQUIRED


class Unauthorized(GatewayError):
    kind = ErrorKind.UNAUTHORIZED


class ModelUnavailable(GatewayError):
    kind = ErrorKind.MODEL_UNAVAILABLE


class RequestTimeout(GatewayError):
    kind = ErrorKind.REQUEST_TIMEOUT


class MalformedUpstreamResponse(GatewayError):
    """The upstream call succeeded but carried no usable text."""

    kind = ErrorKind.MALFORMED_RESPONSE


class UpstreamUnknown(GatewayError):
    kind = ErrorKind.UPSTREAM_UNKNOWN
