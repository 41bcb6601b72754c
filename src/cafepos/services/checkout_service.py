from __future__ import annotations

from typing import Callable, Iterable, Optional

import logging
from cafepos.domain.errors import (
    InsufficientStockError,
    TransientIOError,
    ValidationError,
)
from cafepos.domain.models import CartLine, Sale, SaleItem
from cafepos.repositories.contracts import SaleRepository
from cafepos.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork
from cafepos.services.concurrency import ProductLockManager

log = logging.getLogger("cafepos.checkout")


class CheckoutService:
    """Turns cart lines into a committed sale, or rejects them with no change.

    Checkouts that reference overlapping products are serialised through the
    lock manager; the first one to hold the locks is served in full and a
    later one that no longer fits the remaining stock is rejected whole.
    """

    def __init__(
        self,
        repo: SaleRepository,
        locks: ProductLockManager | None = None,
        uow_factory: Callable[[], UnitOfWork] | None = None,
    ):
        self.repo = repo
        self.locks = locks or ProductLockManager()
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(repo))

    def checkout(self, lines: Iterable[CartLine], actor_user_id: int | None = None) -> Optional[Sale]:
        lines = list(lines)
        if not lines:
            return None

        items: list[SaleItem] = []
        for line in lines:
            qty = int(line.quantity)
            price = float(line.price)
            if qty <= 0:
                raise ValidationError("Qty must be >= 1.")
            if price < 0:
                raise ValidationError("Price must be >= 0.")
            # price comes from the cart line, so later catalog edits never rewrite history
            items.append(SaleItem(product_id=line.product_id, quantity=qty, price=price))

        with self.locks.hold(it.product_id for it in items):
            try:
                with self.uow_factory() as uow:
                    sale = uow.record_sale(items, actor_user_id=actor_user_id)
            except InsufficientStockError as e:
                log.warning(
                    "checkout_rejected product_id=%s requested=%s available=%s actor=%s",
                    e.product_id, e.requested, e.available, actor_user_id,
                )
                raise
            except TransientIOError:
                log.error("checkout_failed lines=%s actor=%s", len(items), actor_user_id, exc_info=True)
                raise

        log.info("sale_committed sale_id=%s items=%s total=%.2f actor=%s", sale.id, len(items), sale.total, actor_user_id)
        return sale
