"""Typed failures raised by points economy operations."""

from __future__ import annotations


class EconomyError(RuntimeError):
    """Base exception for recoverable points economy failures."""

    status_code: int = 400
    code: str = "economy_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(EconomyError):
    """Raised when an operation receives malformed input."""

    status_code = 422
    code = "validation_error"


class NotFoundError(EconomyError):
    """Raised for missing or inactive catalog entries, attempts and redemptions."""

    status_code = 404
    code = "not_found"

    def __init__(self, resource: str, message: str | None = None) -> None:
        super().__init__(message or f"{resource} not found")
        self.resource = resource


class ConflictError(EconomyError):
    """Raised on duplicate joins and duplicate redemptions."""

    status_code = 409
    code = "conflict"


class InvalidStateError(EconomyError):
    """Raised when a transition is not allowed from the current state."""

    status_code = 409
    code = "invalid_state"

    def __init__(self, entity: str, current: str, requested: str) -> None:
        super().__init__(f"Cannot transition {entity} from {current} to {requested}")
        self.entity = entity
        self.current = current
        self.requested = requested


class InsufficientFundsError(EconomyError):
    """Raised when a debit would drive a balance negative."""

    status_code = 402
    code = "insufficient_funds"

    def __init__(self, available: int, required: int) -> None:
        super().__init__(f"Insufficient points. You have {available}, need {required}")
        self.available = available
        self.required = required


class OutOfStockError(EconomyError):
    """Raised when a reward has no remaining units."""

    status_code = 409
    code = "out_of_stock"

    def __init__(self, message: str = "This reward is out of stock") -> None:
        super().__init__(message)


class ExpiredError(EconomyError):
    """Raised when a reward's expiry has passed."""

    status_code = 410
    code = "expired"

    def __init__(self, message: str = "This reward has expired") -> None:
        super().__init__(message)


class TransientStoreError(EconomyError):
    """Raised when the underlying store fails; the unit of work was rolled back."""

    status_code = 503
    code = "store_unavailable"


__all__ = [
    "ConflictError",
    "EconomyError",
    "ExpiredError",
    "InsufficientFundsError",
    "InvalidStateError",
    "NotFoundError",
    "OutOfStockError",
    "TransientStoreError",
    "ValidationError",
]
