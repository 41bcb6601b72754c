from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    price: float
    stock: int
    low_stock_threshold: int
    category: str
    image_urls: tuple[str, ...] = ()

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.low_stock_threshold


@dataclass(frozen=True)
class CartLine:
    product: Product
    quantity: int

    @property
    def product_id(self) -> str:
        return self.product.id

    @property
    def price(self) -> float:
        return self.product.price

    @property
    def subtotal(self) -> float:
        return self.product.price * self.quantity


@dataclass(frozen=True)
class SaleItem:
    product_id: str
    quantity: int
    price: float

    @property
    def subtotal(self) -> float:
        return self.price * self.quantity


@dataclass(frozen=True)
class Sale:
    id: int
    items: tuple[SaleItem, ...]
    total: float
    created_at: datetime
    actor_user_id: Optional[int] = None


@dataclass(frozen=True)
class User:
    id: int
    email: str
    role: str
    active: int = 1


@dataclass(frozen=True)
class ProductPerformance:
    product_id: str
    name: str
    units: int
    revenue: float


@dataclass(frozen=True)
class SalesSummary:
    sales_count: int
    total_revenue: float
    top_seller: Optional[ProductPerformance]
    products: list[ProductPerformance] = field(default_factory=list)
