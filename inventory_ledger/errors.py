"""Error taxonomy shared by the stock mutator, the ledger and the history queries.

Every error carries the HTTP status and the ``error`` code rendered by the API
exception handler as ``{"error": ..., "message": ...}``.
"""


class InventoryError(Exception):
    status_code = 500
    error = "InternalServerError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(InventoryError):
    """Missing or malformed input: quantity, ids, pagination or filters."""

    status_code = 400
    error = "ValidationError"


class Unauthorized(InventoryError):
    status_code = 401
    error = "Unauthorized"


class Forbidden(InventoryError):
    status_code = 403
    error = "Forbidden"


class NotFound(InventoryError):
    status_code = 404
    error = "NotFound"


class InsufficientStock(InventoryError):
    """A decrement would take the quantity below zero. Nothing was written."""

    status_code = 400
    error = "InsufficientStock"

    def __init__(self, product_id: str, available: int, requested: int):
        super().__init__(
            f"Insufficient quantity available. Current stock: {available}, requested: {requested}"
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class ConcurrencyConflict(InventoryError):
    """Concurrent writers kept winning the race for the same stock record."""

    status_code = 409
    error = "ConcurrencyConflict"

    def __init__(self, product_id: str, attempts: int):
        super().__init__(
            f"Stock for product {product_id} changed concurrently; gave up after {attempts} attempts"
        )
        self.product_id = product_id
        self.attempts = attempts
