"""
Error taxonomy for the checkout core.

- ValidationError: rejected before any state changes
- NotFoundError: lookup failed at the point of use
- SettlementError / VoidError: operation-level bases callers can catch

Consistency warnings and settlement inconsistencies are not exceptions.
They are reported on the operation result and recorded as audit events.
"""


class PosError(Exception):
    """Base error carrying optional structured details."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ValidationError(PosError):
    pass


class NotFoundError(PosError):
    pass


class SettlementError(PosError):
    """Checkout failed before anything was recorded."""
    pass


class VoidError(PosError):
    pass


class EmptyCartError(ValidationError, SettlementError):
    pass


class InvalidPaymentMethodError(ValidationError, SettlementError):
    pass


class InvalidQuantityError(ValidationError):
    pass


class OutOfStockError(ValidationError):
    pass


class PriceOverrideError(ValidationError):
    pass


class ShiftClosedError(ValidationError):
    pass


class SettingsError(ValidationError):
    pass


class ProductNotFoundError(NotFoundError):
    pass


class CartLineNotFoundError(NotFoundError):
    pass


class ShiftNotFoundError(NotFoundError):
    pass


class SaleNotFoundError(NotFoundError, VoidError):
    pass


class VoidNotPermittedError(VoidError):
    """Void refused by store policy (e.g. sale belongs to a closed shift)."""
    pass


class NoActiveShiftError(ValidationError):
    """Expenses are only recorded against an open shift."""
    pass


class ExpenseNotFoundError(NotFoundError):
    pass
