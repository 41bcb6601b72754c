from __future__ import annotations

from typing import Iterator

from cafepos.domain.models import CartLine, Product


class Cart:
    """Local, unpersisted selection of products and quantities.

    Lines are keyed by product id, so there is at most one line per product.
    The total is recomputed from the lines on every call and never stored.
    """

    def __init__(self) -> None:
        self._lines: dict[str, CartLine] = {}

    def add(self, product: Product) -> None:
        existing = self._lines.get(product.id)
        if existing:
            self._lines[product.id] = CartLine(product=existing.product, quantity=existing.quantity + 1)
        else:
            self._lines[product.id] = CartLine(product=product, quantity=1)

    def remove(self, product_id: str) -> None:
        self._lines.pop(product_id, None)

    def set_quantity(self, product_id: str, qty: int) -> None:
        qty = int(qty)
        if qty <= 0:
            self.remove(product_id)
            return
        existing = self._lines.get(product_id)
        if existing:
            self._lines[product_id] = CartLine(product=existing.product, quantity=qty)

    def clear(self) -> None:
        self._lines.clear()

    def total(self) -> float:
        return sum(line.price * line.quantity for line in self._lines.values())

    def lines(self) -> list[CartLine]:
        return list(self._lines.values())

    def quantity_of(self, product_id: str) -> int:
        line = self._lines.get(product_id)
        return line.quantity if line else 0

    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[CartLine]:
        return iter(list(self._lines.values()))
