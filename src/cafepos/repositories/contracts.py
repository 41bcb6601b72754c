from __future__ import annotations

from typing import Iterable, Optional, Protocol

from cafepos.domain.models import Product, Sale, SaleItem


class ProductRepository(Protocol):
    def add_product(
        self,
        product_id: str,
        name: str,
        price: float,
        stock: int,
        low_stock_threshold: int,
        category: str,
        image_urls: Iterable[str],
    ) -> None: ...
    def replace_product(self, product: Product, stock_delta: Optional[int] = None) -> Optional[Product]: ...
    def delete_product(self, product_id: str) -> bool: ...
    def list_products(self) -> list[Product]: ...
    def get_product_by_id(self, product_id: str) -> Optional[Product]: ...
    def count_products(self) -> int: ...


class SaleRepository(Protocol):
    def record_sale(self, created_at_iso: str, items: Iterable[SaleItem], actor_user_id: Optional[int] = None) -> int: ...
    def list_sales(self) -> list[Sale]: ...
    def get_sale(self, sale_id: int) -> Optional[Sale]: ...
