from __future__ import annotations

import logging
import secrets
from dataclasses import replace
from typing import Iterable, Mapping

from cafepos.domain.errors import ValidationError, NotFoundError
from cafepos.domain.models import Product
from cafepos.repositories.contracts import ProductRepository
from cafepos.services.concurrency import ProductLockManager

log = logging.getLogger(__name__)


DEMO_CATALOG: list[dict] = [
    {"name": "Espresso", "price": 2.50, "stock": 100, "category": "Coffee", "low_stock_threshold": 10,
     "image_urls": ["https://picsum.photos/seed/espresso/400", "https://picsum.photos/seed/espresso_shot/400"]},
    {"name": "Latte", "price": 3.50, "stock": 8, "category": "Coffee", "low_stock_threshold": 10,
     "image_urls": ["https://picsum.photos/seed/latte/400", "https://picsum.photos/seed/latte_art/400"]},
    {"name": "Croissant", "price": 2.75, "stock": 40, "category": "Pastry", "low_stock_threshold": 5,
     "image_urls": ["https://picsum.photos/seed/croissant/400"]},
    {"name": "Muffin", "price": 3.00, "stock": 35, "category": "Pastry", "low_stock_threshold": 5,
     "image_urls": ["https://picsum.photos/seed/muffin/400"]},
    {"name": "Iced Tea", "price": 3.25, "stock": 50, "category": "Drinks", "low_stock_threshold": 15,
     "image_urls": ["https://picsum.photos/seed/tea/400"]},
    {"name": "Sandwich", "price": 7.50, "stock": 20, "category": "Food", "low_stock_threshold": 5,
     "image_urls": ["https://picsum.photos/seed/sandwich/400"]},
]


def _new_product_id() -> str:
    return f"p{secrets.token_hex(6)}"


def _clean_image_urls(urls: Iterable[str] | None) -> tuple[str, ...]:
    if urls is None:
        return ()
    if isinstance(urls, str):
        raise ValidationError("Image URLs must be a list of strings.")
    cleaned = []
    for u in urls:
        if not isinstance(u, str):
            raise ValidationError("Image URLs must be a list of strings.")
        if u.strip():
            cleaned.append(u.strip())
    return tuple(cleaned)


def validate_product_fields(
    name: str, category: str, price: float, stock: int, low_stock_threshold: int
) -> tuple[str, str, float, int, int]:
    name = (name or "").strip()
    category = (category or "").strip()
    if not name or not category:
        raise ValidationError("Name and Category are required.")
    try:
        price = float(price)
        stock = int(stock)
        low_stock_threshold = int(low_stock_threshold)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid numeric field: {e}") from e
    if price < 0:
        raise ValidationError("Price must be >= 0.")
    if stock < 0 or low_stock_threshold < 0:
        raise ValidationError("Stock values must be >= 0.")
    return name, category, price, stock, low_stock_threshold


class CatalogService:
    def __init__(self, repo: ProductRepository, locks: ProductLockManager | None = None):
        self.repo = repo
        self.locks = locks or ProductLockManager()

    def list_products(self) -> list[Product]:
        return self.repo.list_products()

    def get_product(self, product_id: str) -> Product:
        p = self.repo.get_product_by_id(product_id)
        if not p:
            raise NotFoundError(f"Product not found: {product_id}")
        return p

    def search_products(self, term: str) -> list[Product]:
        needle = (term or "").strip().lower()
        products = self.repo.list_products()
        if not needle:
            return products
        return [p for p in products if needle in p.name.lower()]

    def low_stock_products(self) -> list[Product]:
        return [p for p in self.repo.list_products() if p.is_low_stock]

    def create_product(self, data: Mapping) -> Product:
        """
        data: {name, category, price, stock, low_stock_threshold, image_urls}
        """
        name, category, price, stock, threshold = validate_product_fields(
            data.get("name", ""),
            data.get("category", ""),
            data.get("price", 0),
            data.get("stock", 0),
            data.get("low_stock_threshold", 0),
        )
        urls = _clean_image_urls(data.get("image_urls"))

        product = Product(
            id=_new_product_id(),
            name=name,
            price=price,
            stock=stock,
            low_stock_threshold=threshold,
            category=category,
            image_urls=urls,
        )
        self.repo.add_product(product.id, name, price, stock, threshold, category, urls)
        log.info("product_created id=%s name=%s stock=%s", product.id, name, stock)
        return product

    def update_product(self, product: Product, base_stock: int | None = None) -> Product:
        """Save an edited product.

        ``base_stock`` is the stock the editor started from. When given, only
        the difference ``product.stock - base_stock`` is applied, so sales
        committed since the product was read are not undone. Without it
        ``product.stock`` is written as an absolute count.
        """
        name, category, price, stock, threshold = validate_product_fields(
            product.name, product.category, product.price, product.stock, product.low_stock_threshold
        )
        cleaned = replace(
            product,
            name=name,
            category=category,
            price=price,
            stock=stock,
            low_stock_threshold=threshold,
            image_urls=_clean_image_urls(product.image_urls),
        )
        stock_delta = None if base_stock is None else stock - int(base_stock)
        with self.locks.hold([product.id]):
            stored = self.repo.replace_product(cleaned, stock_delta=stock_delta)
        if stored is None:
            raise NotFoundError(f"Product not found: {product.id}")
        log.info("product_updated id=%s stock=%s", product.id, stored.stock)
        return stored

    def delete_product(self, product_id: str) -> None:
        removed = self.repo.delete_product(product_id)
        if not removed:
            raise NotFoundError(f"Product not found: {product_id}")
        log.info("product_deleted id=%s", product_id)

    def seed_demo_catalog(self) -> int:
        if self.repo.count_products() > 0:
            return 0
        for data in DEMO_CATALOG:
            self.create_product(data)
        return len(DEMO_CATALOG)
