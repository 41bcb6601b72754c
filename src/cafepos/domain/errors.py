from __future__ import annotations


class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class NotFoundError(AppError):
    pass


class InsufficientStockError(AppError):
    """Checkout rejected because a product lacks stock (or no longer exists).

    ``stock`` holds the authoritative stock of every product referenced by the
    rejected checkout, read inside the same transaction, so callers can
    re-synchronise their view without another round trip. A product that no
    longer exists maps to None.
    """

    def __init__(self, product_id: str, requested: int, available: int, stock: dict[str, int | None] | None = None):
        self.product_id = product_id
        self.requested = int(requested)
        self.available = int(available)
        self.stock = dict(stock or {})
        super().__init__(f"Not enough stock for {product_id}. Requested: {requested}, available: {available}")


class TransientIOError(AppError):
    pass


class AuthorizationError(AppError):
    pass
