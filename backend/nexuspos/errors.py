# Overview: Typed failures raised by the service layer and mapped to HTTP codes by the routes.

"""
Service Error Taxonomy

Every business-mutating path surfaces one of these to its caller.
Nothing here is retried automatically; the caller decides.

- PermissionDeniedError (403): authorization check failed
- NotFoundError (404): referenced entity missing or owned by another business
- ConflictError (409): duplicate barcode/folio/email/phone, shift already open
- InvalidStateError (409): lifecycle state does not allow the operation
- ValidationError (400): malformed input, lists every violation found
- InsufficientPaymentError (402): tendered amount below the sale total
"""

from __future__ import annotations


class PosError(Exception):
    """Base class for all service-layer failures."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class PermissionDeniedError(PosError):
    """Raised when user lacks required permission."""
    status_code = 403

    def __init__(self, message: str, permission: str | None = None):
        super().__init__(message, {"required_permission": permission} if permission else None)
        self.permission = permission


class PinRequiredError(PermissionDeniedError):
    """Raised when a sensitive operation is attempted without a valid PIN."""


class NotFoundError(PosError):
    status_code = 404


class ConflictError(PosError):
    status_code = 409


class ShiftAlreadyOpenError(ConflictError):
    """Raised when a user already holds an open shift."""


class InvalidStateError(PosError):
    status_code = 409


class ValidationError(PosError):
    """400-level input problem carrying every violation found."""
    status_code = 400

    def __init__(self, errors: list[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors), {"errors": self.errors})


class InsufficientPaymentError(PosError):
    status_code = 402

    def __init__(self, total_cents: int, paid_cents: int):
        super().__init__(
            f"Insufficient payment: {paid_cents} tendered, {total_cents} due",
            {"total_cents": total_cents, "paid_cents": paid_cents,
             "missing_cents": total_cents - paid_cents},
        )
        self.total_cents = total_cents
        self.paid_cents = paid_cents
