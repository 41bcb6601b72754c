from __future__ import annotations

import logging
from dataclasses import replace
from typing import Mapping, Optional

from cafepos.application.container import AppContainer
from cafepos.domain.cart import Cart
from cafepos.domain.errors import InsufficientStockError, NotFoundError, TransientIOError
from cafepos.domain.models import Product, Sale, SalesSummary, User
from cafepos.services.reporting_service import summarize_sales

log = logging.getLogger(__name__)


class PosSession:
    """One terminal session: the logged-in user, the cart and the local view
    of products and sales.

    Cart edits never touch the database. The only submission point is
    ``checkout()``, which keeps the cart when the sale is rejected.
    """

    def __init__(self, container: AppContainer):
        self.c = container
        self.user: Optional[User] = None
        self.cart = Cart()
        self.products: list[Product] = []
        self.sales: list[Sale] = []
        self.last_error: Optional[str] = None

    # ---------- Auth ----------
    def login(self, email: str, password: str) -> User:
        self.user = self.c.auth.login(email, password)
        self.refresh_products()
        self.refresh_sales()
        log.info("session_login user_id=%s role=%s", self.user.id, self.user.role)
        return self.user

    def logout(self) -> None:
        if self.user:
            log.info("session_logout user_id=%s", self.user.id)
        self.user = None
        self.cart.clear()

    # ---------- Sync ----------
    def refresh_products(self) -> list[Product]:
        self.c.auth.require_action(self.user, "view_catalog")
        self.products = self.c.catalog.list_products()
        return self.products

    def refresh_sales(self) -> list[Sale]:
        self.sales = self.c.ledger.list_sales()
        return self.sales

    def product(self, product_id: str) -> Product:
        for p in self.products:
            if p.id == product_id:
                return p
        raise NotFoundError(f"Product not found: {product_id}")

    def search(self, term: str) -> list[Product]:
        self.c.auth.require_action(self.user, "view_catalog")
        needle = (term or "").strip().lower()
        return [p for p in self.products if needle in p.name.lower()]

    def _apply_stock(self, stock: Mapping[str, Optional[int]]) -> None:
        # None means the product was deleted elsewhere
        self.products = [
            replace(p, stock=int(stock[p.id])) if p.id in stock else p
            for p in self.products
            if stock.get(p.id, p.stock) is not None
        ]

    # ---------- Cart ----------
    def add_to_cart(self, product_id: str) -> None:
        self.cart.add(self.product(product_id))

    def remove_from_cart(self, product_id: str) -> None:
        self.cart.remove(product_id)

    def update_cart_quantity(self, product_id: str, quantity: int) -> None:
        self.cart.set_quantity(product_id, quantity)

    def clear_cart(self) -> None:
        self.cart.clear()

    def checkout(self) -> Optional[Sale]:
        self.c.auth.require_action(self.user, "checkout")
        if self.cart.is_empty:
            return None

        lines = self.cart.lines()
        try:
            sale = self.c.checkout.checkout(lines, actor_user_id=self.user.id)
        except InsufficientStockError as e:
            name = next((p.name for p in self.products if p.id == e.product_id), e.product_id)
            self._apply_stock(e.stock)
            if e.stock.get(e.product_id, 0) is None:
                self.last_error = f"Checkout failed. {name} is no longer in the catalog; remove it from the cart."
            else:
                self.last_error = f"Checkout failed. Not enough stock for {name} (available: {e.available})."
            raise
        except TransientIOError:
            self.last_error = "Checkout failed. The sale could not be saved; please retry."
            try:
                self.refresh_products()
            except Exception:
                log.exception("resync_failed after checkout failure")
            raise

        self.sales.append(sale)
        self.cart.clear()
        self.last_error = None

        sold = {line.product_id: line.quantity for line in lines}
        self._apply_stock({p.id: p.stock - sold[p.id] for p in self.products if p.id in sold})
        if self.c.settings.resync_after_checkout:
            try:
                self.refresh_products()
            except Exception:
                # sale is committed; the local decrement above keeps the view usable
                log.exception("resync_failed after sale_id=%s", sale.id)
        return sale

    # ---------- Inventory ----------
    def create_product(self, data: Mapping) -> Product:
        self.c.auth.require_action(self.user, "manage_inventory")
        product = self.c.catalog.create_product(data)
        self.products.append(product)
        return product

    def update_product(self, product: Product) -> Product:
        self.c.auth.require_action(self.user, "manage_inventory")
        base_stock = next((p.stock for p in self.products if p.id == product.id), None)
        updated = self.c.catalog.update_product(product, base_stock=base_stock)
        self.products = [updated if p.id == updated.id else p for p in self.products]
        return updated

    def delete_product(self, product_id: str) -> None:
        self.c.auth.require_action(self.user, "manage_inventory")
        self.c.catalog.delete_product(product_id)
        self.products = [p for p in self.products if p.id != product_id]

    # ---------- Read side ----------
    def report(self) -> SalesSummary:
        self.c.auth.require_action(self.user, "view_reports")
        return summarize_sales(self.sales, self.products)

    def ask_insights(self, question: str) -> str:
        self.c.auth.require_action(self.user, "ai_insights")
        return self.c.insights.ask(question, self.products, self.sales)

    def receipt(self, sale: Sale) -> str:
        return self.c.receipts.render(sale, self.products)
