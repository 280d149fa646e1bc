"""Typed failures raised by the domain and persistence layers.

Every exception carries a short, stable ``code`` (used as the ``detail``
field of error responses) and the HTTP status the API boundary maps it
to. ``str(exc)`` is the code, so callers can branch on it the same way
they would on a plain ``ValueError("INSUFFICIENT_STOCK")``.
"""


class DomainError(Exception):
    """Base class for all expected failures.

    Attributes:
        code: Machine-readable error code.
        status_code: HTTP status used by the API boundary.
        message: Human-readable explanation.
    """

    code = "INTERNAL"
    status_code = 500

    def __init__(self, message: str | None = None, *, code: str | None = None):
        if code is not None:
            self.code = code
        self.message = message or self.code
        super().__init__(self.code)


class InvalidRequest(DomainError):
    code = "VALIDATION_ERROR"
    status_code = 400


class NotFound(DomainError):
    code = "NOT_FOUND"
    status_code = 404


class InsufficientStock(DomainError):
    code = "INSUFFICIENT_STOCK"
    status_code = 400


class InvalidTransition(DomainError):
    code = "INVALID_TRANSITION"
    status_code = 400


class CouponInvalid(DomainError):
    code = "COUPON_INVALID"
    status_code = 404


class CouponExpired(DomainError):
    code = "COUPON_EXPIRED"
    status_code = 400


class CouponAlreadyUsed(DomainError):
    code = "COUPON_ALREADY_USED"
    status_code = 400


class Unauthorized(DomainError):
    code = "UNAUTHORIZED"
    status_code = 401


class Forbidden(DomainError):
    code = "FORBIDDEN"
    status_code = 403


class ReservationMismatch(DomainError):
    """Raised when a commit/release would push ``reserved`` or
    ``quantity`` below zero, i.e. the ledger disagrees with order history."""

    code = "RESERVATION_MISMATCH"
    status_code = 409


class UpstreamUnavailable(DomainError):
    code = "UPSTREAM_UNAVAILABLE"
    status_code = 503


class Conflict(DomainError):
    code = "CONFLICT"
    status_code = 409
