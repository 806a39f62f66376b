"""
Domain error kinds raised by the ledgers and the annulment saga.

Every error carries a human-readable message and an optional ``details``
dict. The HTTP boundary maps the kind to a status code; the ledgers never
know about HTTP.
"""

from __future__ import annotations


class BackOfficeError(Exception):
    """Base class for every domain error."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- kinds -----------------------------------------------------------------

class ValidationError(BackOfficeError):
    """Bad input shape or range."""


class StateConflict(BackOfficeError):
    """Transition not allowed from the entity's current state."""


class NotFound(BackOfficeError):
    """Missing entity id."""


class ExternalServiceFailure(BackOfficeError):
    """The certifier (or another outside system) failed or timed out."""


class InvariantViolation(BackOfficeError):
    """Internal consistency failure."""


class InsufficientStock(BackOfficeError):
    def __init__(self, product_id: int, required: int, available: int, message: str | None = None):
        super().__init__(
            message or f"Insufficient stock for product {product_id}. Available: {available}, required: {required}",
            details={"product_id": product_id, "required": required, "available": available},
        )
        self.product_id = product_id
        self.required = required
        self.available = available


# --- stock -----------------------------------------------------------------

class InactiveProduct(ValidationError):
    pass


class InvalidQuantity(ValidationError):
    pass


class NothingToRevert(InvariantViolation):
    pass


# --- cash box --------------------------------------------------------------

class CashBoxAlreadyOpen(StateConflict):
    pass


class CashBoxNotOpen(StateConflict):
    pass


class CashBoxClosed(StateConflict):
    pass


# --- sales / fiscal / annulment ---------------------------------------------

class CannotCancelInvoiced(StateConflict):
    pass


class AlreadyAnnulled(StateConflict):
    pass


class MustBeCompletedFirst(StateConflict):
    pass


class NoFiscalDocument(StateConflict):
    pass


class AlreadyHasAnnulment(StateConflict):
    pass


class DocumentNotAuthorized(StateConflict):
    pass
