"""Error taxonomy for the stock ledger.

Every error derives from ``LedgerError`` (itself a ``ValueError``) and carries
the HTTP status and a stable machine-readable code the API renders.
"""


class LedgerError(ValueError):
    status_code = 400
    code = "LEDGER_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(LedgerError):
    status_code = 404
    code = "NOT_FOUND"


class ProductNotFound(NotFound):
    code = "PRODUCT_NOT_FOUND"


class LocationNotFound(NotFound):
    code = "LOCATION_NOT_FOUND"


class AlreadyExists(LedgerError):
    status_code = 409
    code = "ALREADY_EXISTS"


class InvalidQuantity(LedgerError):
    code = "INVALID_QUANTITY"


class InvalidMovementType(LedgerError):
    code = "INVALID_MOVEMENT_TYPE"


class InsufficientStock(LedgerError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, available: int, requested: int, message: str | None = None):
        super().__init__(message or f"Insufficient stock. Available: {available}, requested: {requested}")
        self.available = available
        self.requested = requested


class SameLocation(LedgerError):
    code = "SAME_LOCATION"


class Conflict(LedgerError):
    status_code = 409
    code = "CONFLICT"


class ConcurrentModification(LedgerError):
    status_code = 409
    code = "CONCURRENT_MODIFICATION"
