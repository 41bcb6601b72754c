from .models import Product, CartLine, SaleItem, Sale, User, ProductPerformance, SalesSummary
from .cart import Cart
from .errors import (
    AuthorizationError,
    InsufficientStockError,
    NotFoundError,
    TransientIOError,
    ValidationError,
)

__all__ = [
    "Product",
    "CartLine",
    "SaleItem",
    "Sale",
    "User",
    "ProductPerformance",
    "SalesSummary",
    "Cart",
    "ValidationError",
    "NotFoundError",
    "InsufficientStockError",
    "TransientIOError",
    "AuthorizationError",
]
